"""Optional handwriting transcription collaborator.

The importer works without it: when no transcriber is configured, or a call
fails, the page document keeps a removable pending marker instead of text.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from inkport.config import ImportConfig

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
BACKOFF_BASE = 1.0  # seconds, doubled per attempt


@dataclass(frozen=True)
class Transcription:
    text: str
    tags: list[str] = field(default_factory=list)


class Transcriber(Protocol):
    def transcribe(self, image: bytes) -> Transcription:
        """Extract text (and optional tags) from a page image."""


class TranscriptionFailed(Exception):
    """The collaborator could not transcribe a page."""


def _retry_wait(resp: httpx.Response, attempt: int, backoff_base: float) -> float:
    wait = backoff_base * (2 ** attempt)
    retry_after = resp.headers.get("retry-after", "")
    if retry_after.isdigit():
        wait = max(wait, float(retry_after))
    return wait


class HttpTranscriber:
    """POSTs the page PNG to an endpoint answering ``{"text", "tags"}``.

    Rate limits (429) and server errors are retried with exponential
    backoff, honouring ``Retry-After``.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        timeout: float = 60.0,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    def _post(self, image: bytes) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        for attempt in range(self.max_retries + 1):
            try:
                resp = httpx.post(
                    self.endpoint,
                    files={"image": ("page.png", image, "image/png")},
                    headers=headers,
                    timeout=self.timeout,
                )
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                if attempt < self.max_retries:
                    time.sleep(self.backoff_base * (2 ** attempt))
                    continue
                raise TranscriptionFailed(f"endpoint unreachable: {e}") from e
            if (resp.status_code == 429 or resp.status_code >= 500) and attempt < self.max_retries:
                time.sleep(_retry_wait(resp, attempt, self.backoff_base))
                continue
            return resp
        return resp  # type: ignore[possibly-undefined]

    def transcribe(self, image: bytes) -> Transcription:
        resp = self._post(image)
        if resp.status_code != 200:
            raise TranscriptionFailed(f"HTTP {resp.status_code} from {self.endpoint}")
        try:
            data = resp.json()
        except ValueError as e:
            raise TranscriptionFailed(f"response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise TranscriptionFailed("response is not a JSON object")

        text = str(data.get("text", "") or "").strip()
        tags = [str(t).strip().lstrip("#") for t in data.get("tags", []) or [] if str(t).strip()]
        return Transcription(text=text, tags=tags)


def build_transcriber(config: ImportConfig) -> Transcriber | None:
    """Transcriber from config, or None when disabled or unconfigured."""
    tc = config.transcription
    if not tc.enabled:
        return None
    if not tc.endpoint:
        logger.warning("Transcription enabled but no endpoint configured; skipping")
        return None
    return HttpTranscriber(tc.endpoint, os.environ.get(tc.api_key_env, ""), tc.timeout)
