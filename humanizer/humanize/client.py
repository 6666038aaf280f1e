"""
Client for the third-party humanizing service.

The upstream is unreliable; from the queue's point of view every problem
(network error, timeout, bad status, unusable body) is a single
HumanizeServiceError and counts as one failed attempt.
"""

from typing import Any, Dict, Optional

import httpx

from humanizer.utils.logging import humanize_logger


class HumanizeServiceError(Exception):
    """Raised when the humanizing service does not return usable text."""
    pass


def extract_humanized_text(payload: Any) -> str:
    """
    Pull the rewritten text out of an upstream response body.

    Accepts a bare string or an object carrying `result` or
    `humanized_text`.
    """
    if isinstance(payload, str):
        text = payload
    elif isinstance(payload, dict):
        text = payload.get("result") or payload.get("humanized_text")
        if not isinstance(text, str):
            raise HumanizeServiceError(
                f"Unexpected response format from API (keys: {sorted(payload)[:10]})"
            )
    else:
        raise HumanizeServiceError("Unexpected response format from API")

    if not text.strip():
        raise HumanizeServiceError("Humanizing service returned empty text")
    return text


class HumanizeClient:
    """
    Async HTTP client for the humanizing endpoint.

    Usage:
        client = HumanizeClient(api_url, timeout_seconds=30)
        text = await client.humanize("Some AI sounding text")
    """

    def __init__(
        self,
        api_url: str,
        timeout_seconds: float = 30.0,
        probe_timeout_seconds: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self.probe_timeout_seconds = probe_timeout_seconds
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"}
            )
        return self._client

    async def humanize(self, text: str) -> str:
        """
        Send text to the humanizing service and return the rewritten text.

        Raises:
            HumanizeServiceError: on any transport, status or format problem
        """
        humanize_logger.debug("Calling humanize API", chars=len(text), preview=text[:100])

        try:
            response = await self.client.post(
                self.api_url,
                json={"text": text},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise HumanizeServiceError(
                f"Humanize API timed out after {self.timeout_seconds}s"
            ) from e
        except httpx.HTTPStatusError as e:
            body = e.response.text[:200]
            humanize_logger.warning(
                "Humanize API returned error status",
                status=e.response.status_code,
                body=body
            )
            raise HumanizeServiceError(
                f"Failed to humanize text via external API: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise HumanizeServiceError(
                f"Failed to humanize text via external API: {e}"
            ) from e

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        return extract_humanized_text(payload)

    async def probe(self, text: str = "This is a test of the humanization API.") -> Dict[str, Any]:
        """Diagnostic call that reports what the upstream answered. Never raises."""
        try:
            response = await self.client.post(
                self.api_url,
                json={"text": text},
                timeout=self.probe_timeout_seconds,
            )
        except httpx.HTTPError as e:
            return {"error": str(e) or type(e).__name__, "data": None}

        try:
            data = response.json()
        except ValueError:
            data = response.text[:2000]

        return {"status": response.status_code, "data": data}

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
