"""
Transcript summarisation utilities.

Each token chunk of the transcript is summarised by Gemini via the
``google-generativeai`` library.  Requests share one
:class:`~longscribe.rate_limiter.RateLimiter` and are retried on transient
failures.  The summary prompt can be customised through the
``SUMMARISER_PROMPT`` environment variable.
"""

from __future__ import annotations

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import PipelineConfig
from .errors import ConfigurationError, ErrorKind, SummaryError, classify_error
from .models import TokenChunk
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


DEFAULT_PROMPT = (
    "You are an expert summariser.  Summarise the following part of a "
    "transcript into a concise report including:\n"
    "• An executive summary of key points\n"
    "• A list of action items\n"
    "• Any important dates, deadlines or follow‑ups\n"
    "Use bullet points and keep the summary under 300 words.\n\n"
    "Transcript:\n{transcript}\n\nSummary:"
)


def _is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorKind.TRANSIENT


class Summarizer:
    """Summarise transcript chunks with a generative model.

    Args:
        config: Pipeline configuration holding the API key, model name and
            concurrency limit.
        wait: tenacity wait strategy; tests pass ``wait_none()``.
    """

    def __init__(self, config: PipelineConfig, wait=None, limiter: Optional[RateLimiter] = None):
        if not config.genai_api_key:
            raise ConfigurationError("GENAI_API_KEY is required for summarisation")
        self.config = config
        self.wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=10)
        self.limiter = limiter or RateLimiter(
            config.summary_max_concurrent, refill_interval=config.refill_interval
        )
        self.prompt_template = os.environ.get("SUMMARISER_PROMPT", DEFAULT_PROMPT)
        genai.configure(api_key=config.genai_api_key)
        self.model = genai.GenerativeModel(config.genai_model)

    def summarise(self, text: str) -> str:
        """Generate a summary for one piece of transcript."""
        prompt = self.prompt_template.format(transcript=text)
        retrying = Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.config.max_attempts),
            wait=self.wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        with self.limiter.slot():
            for attempt in retrying:
                with attempt:
                    response = self.model.generate_content(
                        prompt,
                        generation_config={"temperature": 0.4, "max_output_tokens": 1024},
                    )
        return response.text.strip()

    def summarise_chunks(self, chunks: Sequence[TokenChunk]) -> List[str]:
        """Summarise every chunk; summaries are returned in chunk order.

        Raises:
            SummaryError: If a chunk could not be summarised, including
                responses the model blocked.
        """
        if not chunks:
            return []
        logger.info("Calling generative model %s for %d chunks", self.config.genai_model, len(chunks))
        workers = min(len(chunks), self.limiter.max_concurrent)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="summarise") as executor:
            try:
                summaries = list(executor.map(self.summarise, [c.text for c in chunks]))
            except (google_exceptions.GoogleAPIError, ValueError) as exc:
                raise SummaryError(f"Summarising transcript chunks failed: {exc}") from exc
        logger.info(json.dumps({"event": "summaries_ready", "count": len(summaries)}))
        return summaries


def summarize_chunks(chunks: Sequence[TokenChunk], config: PipelineConfig) -> List[str]:
    """Convenience wrapper building a :class:`Summarizer` from ``config``."""
    return Summarizer(config).summarise_chunks(chunks)
