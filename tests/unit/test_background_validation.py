import asyncio

import pytest

from flightdesk.core.errors import SessionExpiredError, ValidationError
from flightdesk.models.flight_models import Fare, ValidationResult, ValidationStatus
from flightdesk.services.flight.validation import BackgroundValidator


def validated(offer, total):
    return ValidationResult(
        offer_key=offer.key,
        sealed="SEALED-1",
        validated_fare=Fare(total=total, currency="PKR"),
        payload={"sealed": "SEALED-1"},
    )


@pytest.mark.asyncio
async def test_start_returns_before_validation_finishes(mocker, backend, offer, search_params):
    never = asyncio.Event()

    async def hang(client, o, params):
        await never.wait()

    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=hang)

    validator = BackgroundValidator(backend(None))
    handle = validator.start(offer, search_params)

    assert handle.status == ValidationStatus.PENDING
    assert handle.result() is None

    handle.cancel()


@pytest.mark.asyncio
async def test_one_validation_per_selection(mocker, backend, offer, search_params):
    release = asyncio.Event()

    async def slow(client, o, params):
        await release.wait()
        return validated(o, 187500)

    validate = mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=slow)

    validator = BackgroundValidator(backend(None))
    first = validator.start(offer, search_params)
    second = validator.start(offer, search_params)

    assert first is second

    release.set()
    results = await asyncio.gather(first.wait(), second.wait())

    assert validate.await_count == 1
    assert results[0] is results[1]
    assert first.status == ValidationStatus.DONE
    assert validator.start(offer, search_params) is first


@pytest.mark.asyncio
async def test_brand_selection_gets_its_own_validation(mocker, backend, make_offer, search_params):
    offer = make_offer(total=45000, brands=[
        {"brandId": "ECO", "total": 45000},
        {"brandId": "FLEX", "total": 52000},
    ])
    validate = mocker.patch(
        "flightdesk.services.flight.validation.validate_offer",
        side_effect=lambda client, o, params: validated(o, o.fare.total)
    )

    validator = BackgroundValidator(backend(None))
    plain = validator.start(offer, search_params)
    flex = validator.start(offer.with_brand(offer.brands[1]), search_params)

    assert plain is not flex
    assert (await flex.wait()).validated_fare.total == 52000
    assert (await plain.wait()).validated_fare.total == 45000
    assert validate.await_count == 2


@pytest.mark.asyncio
async def test_failure_is_stored_not_raised(mocker, backend, offer, search_params):
    mocker.patch(
        "flightdesk.services.flight.validation.validate_offer",
        side_effect=ValidationError("Price validation failed: supplier timeout")
    )

    validator = BackgroundValidator(backend(None))
    handle = validator.start(offer, search_params)

    with pytest.raises(ValidationError):
        await handle.wait()

    assert handle.status == ValidationStatus.FAILED
    assert handle.result() is None
    assert "supplier timeout" in handle.error.message


@pytest.mark.asyncio
async def test_failed_validation_is_replaced_on_reselect(mocker, backend, offer, search_params):
    validate = mocker.patch(
        "flightdesk.services.flight.validation.validate_offer",
        side_effect=[ValidationError("Price validation failed: timeout"), validated(offer, 185000)]
    )

    validator = BackgroundValidator(backend(None))
    failed = validator.start(offer, search_params)
    with pytest.raises(ValidationError):
        await failed.wait()

    retry = validator.start(offer, search_params)

    assert retry is not failed
    assert (await retry.wait()).sealed == "SEALED-1"
    assert validate.await_count == 2
    assert validator.get(offer) is retry


@pytest.mark.asyncio
async def test_unexpected_crash_becomes_validation_error(mocker, backend, offer, search_params):
    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=RuntimeError("boom"))

    handle = BackgroundValidator(backend(None)).start(offer, search_params)

    with pytest.raises(ValidationError):
        await handle.wait()


@pytest.mark.asyncio
async def test_session_expiry_is_kept_as_is(mocker, backend, offer, search_params):
    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=SessionExpiredError())

    handle = BackgroundValidator(backend(None)).start(offer, search_params)

    with pytest.raises(SessionExpiredError):
        await handle.wait()


@pytest.mark.asyncio
async def test_cancelling_a_waiter_does_not_cancel_validation(mocker, backend, offer, search_params):
    release = asyncio.Event()

    async def slow(client, o, params):
        await release.wait()
        return validated(o, 185000)

    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=slow)

    handle = BackgroundValidator(backend(None)).start(offer, search_params)
    waiter = asyncio.ensure_future(handle.wait())
    await asyncio.sleep(0)
    waiter.cancel()

    release.set()
    result = await handle.wait()

    assert result.validated_fare.total == 185000
    assert waiter.cancelled()


@pytest.mark.asyncio
async def test_done_callback_runs_once_settled(mocker, backend, offer, search_params):
    mocker.patch(
        "flightdesk.services.flight.validation.validate_offer",
        side_effect=lambda client, o, params: validated(o, 185000)
    )
    seen = []

    handle = BackgroundValidator(backend(None)).start(offer, search_params)
    handle.add_done_callback(lambda h: seen.append(h.status))
    await handle.wait()
    await asyncio.sleep(0)

    handle.add_done_callback(lambda h: seen.append("late"))
    await asyncio.sleep(0)

    assert seen == [ValidationStatus.DONE, "late"]
