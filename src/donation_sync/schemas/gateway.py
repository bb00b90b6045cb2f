# src/donation_sync/schemas/gateway.py
"""Wire models for the remote quick donation endpoint."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


def _decimal_to_number(value: Decimal) -> float:
    # Shortest repr of the float round-trips amounts with <= 15 significant digits.
    return float(value)


WireAmount = Annotated[Decimal, PlainSerializer(_decimal_to_number, return_type=float)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuickDonorDto(_CamelModel):
    """Donor section of the submission."""

    first_name: str
    last_name: str
    phone: str | None = None
    email: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    is_organization: bool = False
    organization_name: str | None = None
    donor_type: str = "Individual"


class QuickDonationDto(_CamelModel):
    """Donation section of the submission."""

    donation_amt: WireAmount
    donation_type: str
    date_of_donation: datetime
    payment_mode: str | None = None
    reference_no: str | None = None
    notes: str | None = None


class QuickDonationRequest(_CamelModel):
    """Body posted to the quick donation endpoint."""

    donor: QuickDonorDto
    donation: QuickDonationDto

    def to_wire(self) -> dict[str, object]:
        """Return the JSON-ready camelCase payload."""
        return self.model_dump(mode="json", by_alias=True)


class QuickDonationResponse(_CamelModel):
    """Successful response; ``donor_receipt_detail_id`` is the server donation id."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    donor_id: int | None = None
    donor_receipt_detail_id: int
    donor_full_name: str | None = None
    donation_amt: Decimal | None = None
    date_of_donation: datetime | None = None
