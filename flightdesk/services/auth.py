"""
Agency login - exchanges credentials for an AgencySession.
"""
import logging
from typing import Optional

import httpx

from flightdesk.core import config
from flightdesk.core.errors import AppError, BackendError
from flightdesk.core.session import AgencySession
from flightdesk.services.integration.common.error_mapper import extract_detail, map_backend_error

logger = logging.getLogger("FlightDesk-Auth")


async def login(
    email: str,
    password: str,
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AgencySession:
    """
    POST /api/agencies/login

    Raises BackendError when the backend rejects the credentials or is
    unreachable.
    """
    async with httpx.AsyncClient(
        base_url=(base_url or config.API_BASE_URL).rstrip("/"),
        timeout=config.HTTP_TIMEOUT,
        transport=transport
    ) as client:
        try:
            response = await client.post(
                "/api/agencies/login",
                json={"email": email, "password": password}
            )
        except httpx.HTTPError as e:
            raise BackendError(0, AppError(
                code="NETWORK_ERROR",
                message=f"Could not reach the booking backend: {e}",
                retryable=True
            )) from e

    if response.status_code != 200:
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        # a 401 here means bad credentials, not an expired session
        if response.status_code == 401:
            error = AppError(code="LOGIN_FAILED", message=extract_detail(payload) or "Login failed")
        else:
            error = map_backend_error(response.status_code, payload)
        logger.warning(f"❌ Agency login failed for {email}: {response.status_code}")
        raise BackendError(response.status_code, error)

    data = response.json()
    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        raise BackendError(response.status_code, AppError(
            code="MALFORMED_RESPONSE",
            message="Login response did not include an access token"
        ))

    agency_id = data.get("agency_id")
    logger.info(f"✅ Agency login OK | agency={data.get('agency_name')}")

    return AgencySession(
        access_token=token,
        agency_id=str(agency_id) if agency_id is not None else None,
        agency_name=data.get("agency_name"),
    )
