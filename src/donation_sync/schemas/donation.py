# src/donation_sync/schemas/donation.py
"""Donation-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from donation_sync.models.donation import SyncStatus

AMOUNT_PLACES = 2
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class DonationCreate(BaseModel):
    """Fields captured by the donation form when recording a donation."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    donor_name: str | None = Field(None, max_length=200, description="Donor full name")
    organization_name: str | None = Field(None, max_length=200)
    is_organization: bool = False
    donor_email: str | None = Field(None, max_length=254)
    donor_phone: str | None = Field(None, max_length=40)
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None

    amount: Decimal = Field(..., description="Exact donation amount")
    donation_type: str = Field("General", min_length=1, max_length=80)
    payment_method: str = Field("Cash", min_length=1, max_length=40)
    payment_reference: str | None = Field(None, max_length=120)
    notes: str | None = Field(None, max_length=2000)
    collector_email: str = Field(..., min_length=1, description="Authenticated collector")

    @field_validator(
        "donor_name",
        "organization_name",
        "donor_email",
        "donor_phone",
        "address1",
        "address2",
        "city",
        "state",
        "country",
        "postal_code",
        "payment_reference",
        "notes",
        mode="before",
    )
    @classmethod
    def _optional_strings(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _float_amount_via_repr(cls, value: object) -> object:
        # Floats are converted through their repr so 125.5 stays 125.5.
        if isinstance(value, float):
            return Decimal(repr(value))
        return value

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("amount must be greater than zero")
        try:
            quantized = value.quantize(AMOUNT_QUANTUM)
        except InvalidOperation as exc:
            raise ValueError("amount is too large") from exc
        # Trailing zeros past the cents are fine; real sub-cent digits are not.
        if quantized != value:
            raise ValueError("amount must have at most two decimal places")
        return quantized

    @field_validator("donor_email")
    @classmethod
    def _email_shape(cls, value: str | None) -> str | None:
        if value is not None and "@" not in value:
            raise ValueError("donor_email must be an email address")
        return value

    @model_validator(mode="after")
    def _requires_donor_identity(self) -> DonationCreate:
        if self.is_organization:
            if not self.organization_name:
                raise ValueError("organization_name is required for organization donations")
        elif not (self.donor_name or self.organization_name):
            raise ValueError("donor_name or organization_name is required")
        return self


class DonationRecord(BaseModel):
    """Read-only view of a persisted donation.

    Instances are detached copies; changes go through the store commands.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    receipt_number: str
    server_donation_id: int | None = None

    donor_name: str | None = None
    organization_name: str | None = None
    is_organization: bool = False
    donor_email: str | None = None
    donor_phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None

    amount: Decimal
    donation_type: str
    payment_method: str
    payment_reference: str | None = None
    notes: str | None = None
    collector_email: str
    created_at: datetime

    sync_status: SyncStatus
    sync_attempts: int = 0
    last_sync_attempt: datetime | None = None
    synced_at: datetime | None = None
    error_message: str | None = None
    sync_note: str | None = None

    @property
    def display_name(self) -> str:
        """Name shown in lists: the organization for organization gifts."""
        if self.is_organization and self.organization_name:
            return self.organization_name
        return self.donor_name or self.organization_name or ""

    @property
    def sync_status_display(self) -> str:
        return self.sync_status.display

    @property
    def is_eligible(self) -> bool:
        return self.sync_status in (SyncStatus.PENDING, SyncStatus.FAILED)


class DonationResponse(DonationRecord):
    """Donation as returned by the API, with its display label."""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sync_status_label(self) -> str:
        return self.sync_status_display


class DonationStatistics(BaseModel):
    """Badge counters and totals for the donations screen."""

    total: int = 0
    synced: int = 0
    pending: int = 0
    syncing: int = 0
    failed: int = 0
    total_amount: Decimal = Decimal("0")
    unsynced_amount: Decimal = Decimal("0")
