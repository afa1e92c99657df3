"""
Thin async HTTP base shared by the agent and knowledge-base clients.
Every httpx failure is mapped onto the taxonomy in kbsearch.core.errors.
"""
from typing import Any

import httpx
from loguru import logger

from kbsearch.core.errors import MalformedResponseError, ServerError, TransportError

FAILED_STATUSES = {"error", "failed", "failure"}


def server_message(payload: Any) -> str | None:
    """Pull a human-readable message out of an error payload, if there is one."""
    if isinstance(payload, str):
        return payload.strip() or None
    if not isinstance(payload, dict):
        return None
    for key in ("error", "message", "detail"):
        value = payload.get(key)
        if isinstance(value, dict):
            value = server_message(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def application_error(payload: Any) -> str | None:
    """
    Return an error message when a 2xx payload still reports failure
    (``success: false`` or an error-like ``status``), else None.
    """
    if not isinstance(payload, dict):
        return None
    status = payload.get("status")
    failed = payload.get("success") is False or (
        isinstance(status, str) and status.lower() in FAILED_STATUSES
    )
    if not failed:
        return None
    return server_message(payload) or "The server reported a failure"


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class ServiceClient:
    """
    Base for clients of one external HTTP service.

    An ``httpx.AsyncClient`` may be shared in; without one, each request opens
    a short-lived client of its own.
    """

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"x-api-key": self._api_key}

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, headers=self._headers(), **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def _request(
        self, method: str, path: str, *, timeout: float | None = None, **kwargs
    ) -> Any:
        """
        Perform one request and return the decoded JSON body (None when empty).

        Raises TransportError, ServerError or MalformedResponseError.
        """
        url = f"{self.base_url}{path}"
        logger.debug("[{}] {} {}", self.service_name, method, url)
        try:
            resp = await self._send(method, url, timeout=timeout or self._timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("[{}] {} {} timed out", self.service_name, method, url)
            raise TransportError("The request timed out. Please try again.") from e
        except httpx.HTTPError as e:
            logger.warning("[{}] {} {} failed: {}", self.service_name, method, url, e)
            raise TransportError() from e

        if not resp.is_success:
            body = _error_body(resp)
            message = server_message(body) or f"Request failed with status {resp.status_code}"
            logger.warning("[{}] {} {} -> {}: {}", self.service_name, method, url, resp.status_code, message)
            raise ServerError(message, status_code=resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            logger.warning("[{}] {} {} returned non-JSON body", self.service_name, method, url)
            raise MalformedResponseError() from e
