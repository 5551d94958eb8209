"""Client for the external plant diagnosis webhook."""

import logging
from typing import Optional

import httpx

from drcrop.config import Settings

logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """The diagnosis webhook could not be reached or answered with an error."""


class WebhookClient:
    """Posts image bytes to the configured webhook and returns the raw body.

    One ``httpx.Client`` is kept for the lifetime of the app; ``close`` is
    called at shutdown.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self._url = settings.webhook_url
        self._api_key = settings.webhook_api_key
        self._timeout = settings.webhook_timeout
        self._mode = settings.webhook_mode
        self._client = httpx.Client(timeout=settings.webhook_timeout, transport=transport)

    def _headers(self, content_type: Optional[str] = None) -> dict:
        headers = {"Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def analyze_image(self, image_bytes: bytes, content_type: str, filename: str = "image.jpg") -> str:
        if not self._url:
            raise WebhookError("Analysis webhook URL is not configured (ANALYSIS_WEBHOOK_URL)")

        try:
            if self._mode == "multipart":
                response = self._client.post(
                    self._url,
                    files={"image": (filename, image_bytes, content_type)},
                    headers=self._headers(),
                )
            else:
                response = self._client.post(
                    self._url,
                    content=image_bytes,
                    headers=self._headers(content_type),
                )
            logger.info("Analysis webhook responded with status %s", response.status_code)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("Analysis webhook timed out after %ss", self._timeout)
            raise WebhookError(f"Analysis service timed out after {self._timeout:g} seconds") from exc
        except httpx.HTTPStatusError as exc:
            logger.error("Analysis webhook error body: %s", exc.response.text[:300])
            raise WebhookError(f"Analysis service returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Analysis webhook request failed: %s", exc)
            raise WebhookError(f"Analysis service request failed: {exc}") from exc

        return response.text

    def close(self) -> None:
        self._client.close()
