"""Speech-to-text provider adapters.

Importing this package registers every built-in provider.
"""

from .base import TranscriptionProvider, get_provider, register_provider, registered_providers
from . import deepgram, elevenlabs, gemini, google_speech, whisper  # noqa: F401

__all__ = [
    "TranscriptionProvider",
    "get_provider",
    "register_provider",
    "registered_providers",
]
