"""Async client for the financial backend API (plain JSON over HTTP, no auth)."""

import logging
from typing import (
    Any,
    Dict,
    Type,
    TypeVar,
)

import httpx
from pydantic import (
    BaseModel,
    ValidationError,
)

from fincoach.errors import BackendHttpError

logger = logging.getLogger(__name__)

ContractT = TypeVar("ContractT", bound=BaseModel)


class BackendClient:
    """
    Thin wrapper around :class:`httpx.AsyncClient`.

    Parameters
    ----------
    base_url:
        Root of the backend API, e.g. ``http://localhost:8787``.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional transport override (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def request(
        self, endpoint: str, method: str = "GET", body: Dict[str, Any] | None = None
    ) -> Any:
        """
        Call *endpoint* and return its decoded JSON body.

        Raises
        ------
        BackendHttpError
            On transport failure, non-2xx status, or a body that is not JSON.
        """
        url = f"{self.base_url}{endpoint}"
        logger.debug("Backend %s %s body=%s", method, url, body)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=body)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Backend %s %s failed with HTTP %d", method, endpoint, status)
            raise BackendHttpError(f"HTTP {status} from {endpoint}", status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.warning("Backend %s %s failed: %s", method, endpoint, exc)
            raise BackendHttpError(f"Request to {endpoint} failed: {exc}") from exc
        except ValueError as exc:
            raise BackendHttpError(f"Invalid JSON from {endpoint}: {exc}") from exc

    async def fetch(
        self,
        endpoint: str,
        contract: Type[ContractT],
        method: str = "GET",
        body: Dict[str, Any] | None = None,
    ) -> ContractT:
        """Call *endpoint* and validate the body against *contract*."""
        payload = await self.request(endpoint, method=method, body=body)
        try:
            return contract.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Malformed response from %s: %s", endpoint, exc)
            raise BackendHttpError(
                f"Malformed response from {endpoint}: {exc.error_count()} validation error(s)"
            ) from exc
