"""
Entrypoint for the transcription pipeline.

``handle_event`` accepts the upload event produced by the workflow trigger,
a dictionary with the fields ``path`` and optionally ``byteSize``,
``durationSeconds`` and ``extension``, and returns a ``(body, status)``
pair.  Configuration comes from environment variables; see
:mod:`longscribe.config`.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Union

from . import audio_processor, tasks
from .config import PipelineConfig
from .errors import ConfigurationError, PreconditionError
from .models import SourceMedia

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def _source_from_event(event: Dict[str, Any]) -> Union[str, SourceMedia]:
    path = event["path"]
    if event.get("byteSize") is None:
        return path
    return SourceMedia(
        path=path,
        byte_size=int(event["byteSize"]),
        duration_seconds=float(event.get("durationSeconds") or 0.0),
        extension=event.get("extension") or "",
    )


def handle_event(
    event: Dict[str, Any], context: Any = None, config: Optional[PipelineConfig] = None
) -> Tuple[Union[str, Dict[str, Any]], int]:
    """Transcribe the recording described by ``event``.

    Returns:
        The pipeline output as a dictionary with status 200, or an error
        message with status 400 for bad input and 500 for failures.
    """
    path = (event or {}).get("path")
    if not path:
        logger.warning("Received event with missing path: %s", event)
        return "Missing 'path' in event", 400
    if not audio_processor.is_supported_audio(path):
        logger.info("Unsupported audio file %s", path)
        return f"Unsupported audio file: {path}", 400
    try:
        output = tasks.process_audio(_source_from_event(event), config)
    except (PreconditionError, ConfigurationError) as exc:
        return f"Error: {exc}", 400
    except Exception as exc:
        logger.exception("Error processing %s: %s", path, exc)
        return f"Error: {exc}", 500
    return output.to_dict(), 200
