"""
Background price validation.

BackgroundValidator.start() schedules the validate call as an asyncio task
and returns a ValidationHandle immediately; the caller moves on to the
booking wizard and picks the result up later (cached, awaited, or not at all).
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple

from flightdesk.core.errors import FlightDeskError, SessionExpiredError, ValidationError
from flightdesk.core.metrics import VALIDATION_OUTCOMES
from flightdesk.models.flight_models import (
    FlightOffer,
    OfferKey,
    SearchParams,
    ValidationResult,
    ValidationStatus,
)
from flightdesk.services.flight.pricing import validate_offer
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-Validation")


class ValidationHandle:
    """
    Owns the single in-flight validation for one offer selection.

    The task never raises: failures are stored and re-raised from wait().
    """

    def __init__(self, offer: FlightOffer, task: "asyncio.Task[Optional[ValidationResult]]"):
        self.offer = offer
        self._task = task
        self._error: Optional[FlightDeskError] = None
        self._callbacks: List[Callable[["ValidationHandle"], None]] = []
        task.add_done_callback(self._settled)

    @property
    def offer_key(self) -> OfferKey:
        return self.offer.key

    @property
    def status(self) -> ValidationStatus:
        if not self._task.done():
            return ValidationStatus.PENDING
        if self.result() is not None:
            return ValidationStatus.DONE
        return ValidationStatus.FAILED

    def done(self) -> bool:
        return self._task.done()

    def result(self) -> Optional[ValidationResult]:
        """Cached result, or None while pending or after a failure."""
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.result()

    @property
    def error(self) -> Optional[FlightDeskError]:
        if self._task.done() and self._task.cancelled():
            return ValidationError("Price validation was cancelled")
        return self._error

    async def wait(self) -> ValidationResult:
        """
        Await the same in-flight task. Cancelling the waiter does not
        cancel the validation.
        """
        try:
            result = await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                raise ValidationError("Price validation was cancelled")
            raise

        if result is None:
            raise self._error or ValidationError("Price validation failed")
        return result

    def add_done_callback(self, fn: Callable[["ValidationHandle"], None]) -> None:
        """fn(handle) runs once the validation settles (immediately-scheduled if it already has)."""
        if self._task.done():
            asyncio.get_running_loop().call_soon(fn, self)
        else:
            self._callbacks.append(fn)

    def cancel(self) -> bool:
        return self._task.cancel()

    def _fail(self, error: FlightDeskError) -> None:
        self._error = error

    def _settled(self, task: asyncio.Task) -> None:
        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            try:
                fn(self)
            except Exception:
                logger.exception("Validation callback failed")


class BackgroundValidator:
    """
    Starts at most one validation per offer selection.

    Selections are keyed by offer identity plus chosen brand tier. A pending
    or successful handle is reused; a failed one is replaced on the next
    selection.
    """

    def __init__(self, client: BackendClient):
        self.client = client
        self._handles: Dict[Tuple[OfferKey, Optional[str]], ValidationHandle] = {}

    def start(self, offer: FlightOffer, search_params: SearchParams) -> ValidationHandle:
        key = (offer.key, offer.selected_brand)
        existing = self._handles.get(key)

        if existing is not None and existing.status != ValidationStatus.FAILED:
            VALIDATION_OUTCOMES.labels(outcome="reused").inc()
            return existing

        handle: Optional[ValidationHandle] = None

        async def _run() -> Optional[ValidationResult]:
            try:
                result = await validate_offer(self.client, offer, search_params)
            except SessionExpiredError as e:
                handle._fail(e)
                return None
            except ValidationError as e:
                logger.warning(f"⚠️ Price not confirmed | offer={offer.index} | {e.message}")
                VALIDATION_OUTCOMES.labels(outcome="failed").inc()
                handle._fail(e)
                return None
            except Exception as e:
                logger.exception(f"❌ Validation crashed | offer={offer.index}")
                VALIDATION_OUTCOMES.labels(outcome="failed").inc()
                handle._fail(ValidationError(f"Price validation failed: {e}"))
                return None

            VALIDATION_OUTCOMES.labels(outcome="confirmed").inc()
            logger.info(
                f"✅ Price confirmed | offer={offer.index} | "
                f"{result.validated_fare.total} {result.validated_fare.currency}"
            )
            return result

        task = asyncio.get_running_loop().create_task(_run())
        handle = ValidationHandle(offer, task)
        self._handles[key] = handle

        VALIDATION_OUTCOMES.labels(outcome="started").inc()
        logger.info(f"🔄 Validation started | offer={offer.index} | brand={offer.selected_brand}")
        return handle

    def get(self, offer: FlightOffer) -> Optional[ValidationHandle]:
        return self._handles.get((offer.key, offer.selected_brand))

    def discard(self, handle: ValidationHandle) -> None:
        """Forget the handle; the task itself runs to completion."""
        for key, h in list(self._handles.items()):
            if h is handle:
                del self._handles[key]

    def prune(self, keep: Callable[[ValidationHandle], bool]) -> int:
        """Forget every handle keep() rejects. Running tasks are left to finish."""
        dropped = [key for key, handle in self._handles.items() if not keep(handle)]
        for key in dropped:
            del self._handles[key]
        return len(dropped)
