"""
FlightDesk API - Booking Routes
Booking wizard steps and ticket/package bookings

Endpoints:
    GET    /wizards/{id}                       - Wizard state
    PUT    /wizards/{id}/passengers/{index}    - Edit a passenger
    POST   /wizards/{id}/continue              - PassengerDetails → Review
    POST   /wizards/{id}/confirm               - Review → Payment (creates the booking)
    POST   /wizards/{id}/payment               - Payment → Confirmed
    POST   /wizards/{id}/hold                  - Payment → Held
    DELETE /wizards/{id}                       - Abandon
    POST   /ticket-bookings                    - Create a ticket/package booking
"""

from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from flightdesk.api.v1.deps import current_workspace
from flightdesk.core.workspace import AgencyWorkspace
from flightdesk.models.booking_models import PackagePricing, Passenger, PaymentDetails
from flightdesk.services.booking.ticket_booking import create_ticket_booking
from flightdesk.services.booking.wizard import BookingWizard

router = APIRouter(tags=["Bookings"])
logger = logging.getLogger("FlightDesk-BookingRoutes")


class PassengerUpdate(BaseModel):
    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    nationality: Optional[str] = None
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    document_issue_date: Optional[str] = None
    document_expiry_date: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class TicketBookingRequest(BaseModel):
    ticket_id: str
    ticket_details: Dict[str, Any] = Field(default_factory=dict)
    passengers: List[Passenger]
    pricing: PackagePricing


def _wizard_or_404(workspace: AgencyWorkspace, wizard_id: str) -> BookingWizard:
    wizard = workspace.wizards.get(wizard_id)
    if wizard is None:
        raise HTTPException(404, "Booking session not found")
    return wizard


def _view(wizard_id: str, wizard: BookingWizard):
    return jsonable_encoder({"wizard_id": wizard_id, **wizard.snapshot()})


@router.get("/wizards/{wizard_id}")
async def wizard_state(wizard_id: str, workspace: AgencyWorkspace = Depends(current_workspace)):
    return _view(wizard_id, _wizard_or_404(workspace, wizard_id))


@router.put("/wizards/{wizard_id}/passengers/{index}")
async def update_passenger(
    wizard_id: str,
    index: int,
    update: PassengerUpdate,
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    wizard = _wizard_or_404(workspace, wizard_id)
    wizard.update_passenger(index, **update.model_dump(exclude_none=True))
    return _view(wizard_id, wizard)


@router.post("/wizards/{wizard_id}/continue")
async def continue_to_review(wizard_id: str, workspace: AgencyWorkspace = Depends(current_workspace)):
    wizard = _wizard_or_404(workspace, wizard_id)
    wizard.continue_to_review()
    return _view(wizard_id, wizard)


@router.post("/wizards/{wizard_id}/confirm")
async def confirm_booking(
    wizard_id: str,
    wait_for_validation: bool = Query(default=True),
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    wizard = _wizard_or_404(workspace, wizard_id)
    await wizard.confirm_booking(wait_for_validation=wait_for_validation)
    return _view(wizard_id, wizard)


@router.post("/wizards/{wizard_id}/payment")
async def confirm_payment(
    wizard_id: str,
    details: PaymentDetails,
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    wizard = _wizard_or_404(workspace, wizard_id)
    await wizard.confirm_payment(details)
    return _view(wizard_id, wizard)


@router.post("/wizards/{wizard_id}/hold")
async def hold_booking(wizard_id: str, workspace: AgencyWorkspace = Depends(current_workspace)):
    wizard = _wizard_or_404(workspace, wizard_id)
    await wizard.hold()
    return _view(wizard_id, wizard)


@router.delete("/wizards/{wizard_id}")
async def abandon_wizard(wizard_id: str, workspace: AgencyWorkspace = Depends(current_workspace)):
    if not workspace.abandon_wizard(wizard_id):
        raise HTTPException(404, "Booking session not found")
    return {"success": True}


@router.post("/ticket-bookings")
async def create_ticket_booking_endpoint(
    request: TicketBookingRequest,
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    missing = {i: p.missing_fields() for i, p in enumerate(request.passengers) if p.missing_fields()}
    if missing:
        raise HTTPException(422, {"code": "INCOMPLETE_MANIFEST", "missing": missing})

    booking = await create_ticket_booking(
        workspace.client,
        request.ticket_id,
        request.ticket_details,
        request.passengers,
        request.pricing
    )
    return jsonable_encoder(booking)
