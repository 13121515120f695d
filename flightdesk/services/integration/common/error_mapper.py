from typing import Any

from flightdesk.core.errors import AppError


def extract_detail(payload: Any) -> str:
    if isinstance(payload, str):
        return payload

    if not isinstance(payload, dict):
        return ""

    detail = payload.get("detail")
    if isinstance(detail, str):
        return detail

    # FastAPI 422: [{"loc": [...], "msg": "..."}]
    if isinstance(detail, list) and detail:
        first = detail[0]
        if isinstance(first, dict):
            return first.get("msg", str(first))
        return str(first)

    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict):
            return first.get("detail") or first.get("message") or str(first)
        return str(first)

    message = payload.get("message")
    if isinstance(message, str):
        return message

    return ""


def map_backend_error(status_code: int, payload: Any) -> AppError:
    detail = extract_detail(payload) or f"Backend returned HTTP {status_code}"
    lowered = detail.lower()

    if status_code == 401:
        return AppError(
            code="SESSION_EXPIRED",
            message="Your session has expired. Please login again."
        )

    if "availability" in lowered or "not available" in lowered:
        return AppError(
            code="NO_AVAILABILITY",
            message="The selected flight is no longer available. Please search again."
        )

    if "price" in lowered and ("change" in lowered or "mismatch" in lowered):
        return AppError(
            code="PRICE_CHANGED",
            message="The fare has changed. Please re-validate the price."
        )

    return AppError(
        code=f"HTTP_{status_code}" if status_code else "NETWORK_ERROR",
        message=detail,
        retryable=status_code == 0 or status_code >= 500
    )
