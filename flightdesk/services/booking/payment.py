"""
Payment sub-flow for a created booking.

Credit is settled against the agency's credit facility and confirms at once;
bank transfer, cash and cheque leave the payment pending manual
verification. Holding a booking defers payment entirely.
"""
import logging
from typing import Any, Dict, List

from flightdesk.core import config
from flightdesk.core.errors import SubmissionError
from flightdesk.models.booking_models import (
    Booking,
    BookingStatus,
    PaymentDetails,
    PaymentMethod,
    PaymentStatus,
)
from flightdesk.services.booking.ticket_booking import update_booking
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-Payment")

# Fields each method expects; missing ones warn but do not block
PAYMENT_FIELDS = {
    PaymentMethod.BANK: ("beneficiary_account", "agent_account", "slip_file"),
    PaymentMethod.CHEQUE: ("beneficiary_account", "agent_account", "slip_file"),
    PaymentMethod.CASH: ("bank_name", "depositor_name", "depositor_cnic"),
    PaymentMethod.CREDIT: (),
    PaymentMethod.GATEWAY: (),
}


def payment_warnings(details: PaymentDetails) -> List[str]:
    warnings = []
    for field in PAYMENT_FIELDS[details.method]:
        if not getattr(details, field):
            warnings.append(f"No {field.replace('_', ' ')} provided")
    return warnings


def build_payment_update(details: PaymentDetails, total: float) -> Dict[str, Any]:
    if details.method == PaymentMethod.GATEWAY:
        raise SubmissionError("Online payment gateway is not available yet", retryable=False)

    if not details.amount or details.amount <= 0:
        raise SubmissionError("Invalid amount. Please enter a valid amount before confirming.", retryable=False)

    if details.method == PaymentMethod.CREDIT:
        return {
            "booking_status": BookingStatus.CONFIRMED.value,
            "payment_status": PaymentStatus.PAID.value,
            "payment_method": PaymentMethod.CREDIT.value,
            "paid_amount": total,
        }

    currency = config.DEFAULT_CURRENCY
    notes = (
        f"Payment Method: {details.method.value.upper()} | Amount: {currency} {details.amount:g} | "
        f"Date: {details.date} | {details.note or 'No additional notes'}"
    )
    if details.method == PaymentMethod.CASH:
        notes += (
            f" | Bank: {details.bank_name} | Depositor: {details.depositor_name}"
            f" | CNIC: {details.depositor_cnic}"
        )
    else:
        notes += (
            f" | Beneficiary Account: {details.beneficiary_account}"
            f" | Agent Account: {details.agent_account}"
        )
        if details.slip_file:
            notes += f" | Slip: {details.slip_file}"

    return {
        "booking_status": BookingStatus.CONFIRMED.value,
        "payment_status": PaymentStatus.PENDING.value,
        "payment_method": details.method.value,
        "paid_amount": 0,
        "notes": notes,
    }


async def confirm_payment(client: BackendClient, booking: Booking, details: PaymentDetails) -> Booking:
    update = build_payment_update(details, booking.total)

    for w in payment_warnings(details):
        logger.warning(f"⚠️ Payment for {booking.reference}: {w}")

    await update_booking(client, booking.update_id, update)

    confirmed = booking.with_status(
        update["booking_status"],
        payment_method=details.method,
        payment_status=PaymentStatus(update["payment_status"]),
        paid_amount=update["paid_amount"],
    )
    logger.info(
        f"💳 Payment submitted | ref={booking.reference} | method={details.method.value} | "
        f"payment_status={update['payment_status']}"
    )
    return confirmed


async def hold_booking(client: BackendClient, booking: Booking) -> Booking:
    await update_booking(client, booking.update_id, {"booking_status": BookingStatus.PENDING.value})

    logger.info(f"⏸️ Booking held | ref={booking.reference}")
    return booking.with_status(BookingStatus.PENDING.value)
