import logging

from flightdesk.core.errors import BackendError, ValidationError
from flightdesk.models.flight_models import FlightOffer, SearchParams, ValidationResult
from flightdesk.services.flight.mappers.mapper import map_validation_response
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-Pricing")


async def validate_offer(
    client: BackendClient,
    offer: FlightOffer,
    search_params: SearchParams
) -> ValidationResult:
    """
    POST /api/flights/validate

    Re-confirms price and availability for the (possibly branded) offer.
    Raises ValidationError on any failure except an expired session.
    """
    body = {
        "flight": offer.reference(),
        "searchParams": search_params.to_payload(),
    }

    try:
        response = await client.post("/api/flights/validate", body, service="validate")
    except BackendError as e:
        raise ValidationError(f"Price validation failed: {e.message}") from e

    try:
        result = map_validation_response(response, offer.key, offer.fare.currency)
    except ValueError as e:
        raise ValidationError(f"Price validation failed: {e}") from e

    if result.validated_fare.total != offer.fare.total:
        logger.info(
            f"💱 Fare changed on validation | offer={offer.index} | "
            f"{offer.fare.total} → {result.validated_fare.total} {result.validated_fare.currency}"
        )

    return result
