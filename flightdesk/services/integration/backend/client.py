"""
Agency Backend Client
FlightDesk - REST integration

Every call is bound to an explicit AgencySession. A 401 from the backend
invalidates that session and raises SessionExpiredError; any other failure
becomes a BackendError carrying a mapped AppError.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from flightdesk.core import config
from flightdesk.core.errors import AppError, BackendError, SessionExpiredError
from flightdesk.core.metrics import track_backend_call
from flightdesk.core.session import AgencySession
from flightdesk.services.integration.common.error_mapper import map_backend_error

logger = logging.getLogger("FlightDesk-Backend")


class BackendClient:
    def __init__(
        self,
        session: AgencySession,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.session = session
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        service: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None
    ) -> Any:
        """
        Make an authenticated request and return the decoded JSON body.
        """
        if self.session.expired:
            raise SessionExpiredError()

        with track_backend_call(service):
            try:
                async with self._client() as client:
                    response = await client.request(
                        method,
                        endpoint,
                        params=params,
                        json=body,
                        headers=self.session.auth_headers()
                    )
            except httpx.HTTPError as e:
                logger.error(f"{method} {endpoint} transport error: {e}")
                raise BackendError(0, AppError(
                    code="NETWORK_ERROR",
                    message=f"Could not reach the booking backend: {e}",
                    retryable=True
                )) from e

            if response.status_code == 401:
                logger.warning(f"🔐 {method} {endpoint} rejected token, session invalidated")
                self.session.invalidate()
                raise SessionExpiredError()

            if response.status_code >= 400:
                payload = _safe_json(response)
                error = map_backend_error(response.status_code, payload)
                logger.error(f"{method} {endpoint} failed: {response.status_code} - {error.message}")
                raise BackendError(response.status_code, error)

            if response.status_code == 204 or not response.content:
                return {}

            try:
                return response.json()
            except ValueError:
                raise BackendError(response.status_code, AppError(
                    code="MALFORMED_RESPONSE",
                    message=f"Backend returned a non-JSON body for {endpoint}"
                ))

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, *, service: str) -> Any:
        return await self.request("GET", endpoint, params=params, service=service)

    async def post(self, endpoint: str, body: Optional[Any] = None, *, service: str) -> Any:
        return await self.request("POST", endpoint, body=body or {}, service=service)

    async def put(self, endpoint: str, body: Optional[Any] = None, *, service: str) -> Any:
        return await self.request("PUT", endpoint, body=body or {}, service=service)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
