"""Publish user and assistant turns to an observing client."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Protocol

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.logging import get_logger
from app.core.settings import Settings, get_settings
from app.utils.error_logger import log_http_error

logger = get_logger(__name__)

TWILIO_SYNC_BASE_URL = "https://sync.twilio.com/v1"


class TranscriptSink(Protocol):
    async def publish(self, author: str, text: str, *, interrupt: bool = False) -> None: ...


class RetryableSinkError(Exception):
    """Transient publish failure (transport error or 5xx)."""


class LoggingTranscriptSink:
    """Fallback sink that only records transcript lines in the log."""

    async def publish(self, author: str, text: str, *, interrupt: bool = False) -> None:
        logger.info(
            "Transcript line",
            extra={
                "component": "transcript_sink",
                "operation": "publish",
                "context_data": {"author": author, "text": text[:500], "interrupt": interrupt},
            },
        )


class TwilioSyncTranscriptSink:
    """Sends transcript records as Twilio Sync stream messages."""

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        service_sid: str,
        stream_sid: str,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._auth = httpx.BasicAuth(account_sid, auth_token)
        self._url = f"{TWILIO_SYNC_BASE_URL}/Services/{service_sid}/Streams/{stream_sid}/Messages"
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @property
    def url(self) -> str:
        return self._url

    async def publish(self, author: str, text: str, *, interrupt: bool = False) -> None:
        """Publish one record.

        Raises:
            httpx.HTTPStatusError: On a non-retryable (4xx) response.
            RetryableSinkError: When transient failures exhaust the retries.
        """

        payload = {"text": text, "author": author, "interrupt": interrupt}
        await self._post(payload)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(RetryableSinkError),
        reraise=True,
    )
    async def _post(self, payload: dict[str, object]) -> None:
        try:
            response = await self._client.post(
                self._url,
                data={"Data": json.dumps(payload)},
                auth=self._auth,
            )
        except httpx.TransportError as exc:
            raise RetryableSinkError(str(exc)) from exc

        if response.status_code >= 500:
            log_http_error(
                "transcript_sink",
                response,
                operation="publish",
                context={"stream_url": self._url},
            )
            raise RetryableSinkError(f"Twilio Sync returned {response.status_code}")
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()


def build_transcript_sink(settings: Settings) -> TranscriptSink:
    if not settings.transcript_sink_configured:
        logger.warning("Twilio Sync not configured; transcript lines will only be logged")
        return LoggingTranscriptSink()
    return TwilioSyncTranscriptSink(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        service_sid=settings.twilio_sync_service_sid,
        stream_sid=settings.twilio_sync_stream_sid,
        timeout_seconds=float(settings.http_timeout_seconds),
    )


@lru_cache
def get_transcript_sink() -> TranscriptSink:
    return build_transcript_sink(get_settings())
