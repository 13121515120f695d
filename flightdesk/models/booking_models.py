# flightdesk/models/booking_models.py
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from flightdesk.models.flight_models import PaxType


# Fields that must be filled before the wizard leaves PassengerDetails
REQUIRED_PASSENGER_FIELDS = (
    "pax_type",
    "title",
    "first_name",
    "last_name",
    "document_number",
    "date_of_birth",
    "document_issue_date",
    "document_expiry_date",
    "country",
)


class Passenger(BaseModel):
    pax_type: Optional[PaxType] = None
    title: str = ""                 # Mr / Mrs / Ms / Miss / Master / Dr
    first_name: str = ""
    last_name: str = ""
    gender: str = ""
    date_of_birth: str = ""         # YYYY-MM-DD
    nationality: str = ""
    document_type: str = "PP"       # PP / NIC / DL
    document_number: str = ""
    document_issue_date: str = ""
    document_expiry_date: str = ""
    country: str = ""               # document issue country
    # primary passenger only
    phone: str = ""
    email: str = ""

    def missing_fields(self) -> List[str]:
        missing = []
        for field in REQUIRED_PASSENGER_FIELDS:
            value = getattr(self, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field)
        return missing

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "paxType": self.pax_type.value if self.pax_type else None,
            "salutation": self.title,
            "givenName": self.first_name.upper(),
            "surName": self.last_name.upper(),
            "gender": self.gender,
            "birthDate": self.date_of_birth,
            "nationality": self.nationality,
            "docType": self.document_type,
            "docID": self.document_number,
            "docIssueDate": self.document_issue_date,
            "expiryDate": self.document_expiry_date,
            "docIssueCountry": self.country,
        }
        if self.phone or self.email:
            payload["phone"] = self.phone
            payload["email"] = self.email
        return payload


class BookingStatus(str, Enum):
    UNDER_PROCESS = "underprocess"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    BANK = "bank"
    CASH = "cash"
    CHEQUE = "cheque"
    CREDIT = "credit"
    GATEWAY = "gateway"     # online gateway, not supported yet


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentDetails(BaseModel):
    method: PaymentMethod
    amount: float = 0
    date: str = Field(default_factory=lambda: date.today().isoformat())
    note: str = ""
    # bank transfer / cheque
    beneficiary_account: str = ""
    agent_account: str = ""
    slip_file: Optional[str] = None
    # cash deposit
    bank_name: str = ""
    depositor_name: str = ""
    depositor_cnic: str = ""


class Booking(BaseModel):
    """
    Persisted booking. Manifest and fare are fixed; status and payment
    fields change only through with_status().
    """
    model_config = ConfigDict(frozen=True)

    reference: str
    booking_id: Optional[str] = None
    pnr: Optional[str] = None
    airline_locator: Optional[str] = None
    status: str
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    paid_amount: float = 0
    passengers: List[Passenger] = Field(default_factory=list)
    total: float
    currency: str
    unconfirmed_pricing: bool = False
    warnings: List[str] = Field(default_factory=list)

    @property
    def update_id(self) -> str:
        """Id used for UpdateBooking calls."""
        return self.booking_id or self.reference

    def with_status(
        self,
        status: str,
        payment_method: Optional[PaymentMethod] = None,
        payment_status: Optional[PaymentStatus] = None,
        paid_amount: Optional[float] = None
    ) -> "Booking":
        return self.model_copy(update={
            "status": status,
            "payment_method": payment_method,
            "payment_status": payment_status,
            "paid_amount": self.paid_amount if paid_amount is None else paid_amount,
        })


class PackagePricing(BaseModel):
    """Final per-person selling prices for a ticket/package booking."""
    adult_selling: float = 0
    child_selling: Optional[float] = None
    infant_selling: float = 0

    def price_for(self, pax_type: Optional[PaxType]) -> float:
        if pax_type == PaxType.CHILD:
            return self.child_selling if self.child_selling else self.adult_selling
        if pax_type == PaxType.INFANT:
            return self.infant_selling
        return self.adult_selling

    def grand_total(self, passengers: List[Passenger]) -> float:
        return sum(self.price_for(p.pax_type) for p in passengers)
