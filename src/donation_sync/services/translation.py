"""Translation of local donation records into remote submission payloads.

Everything here is pure: no I/O, no clock, no store access.
"""

from __future__ import annotations

from donation_sync.schemas.donation import DonationRecord
from donation_sync.schemas.gateway import QuickDonationDto, QuickDonationRequest, QuickDonorDto

DONOR_TYPE_INDIVIDUAL = "Individual"
DONOR_TYPE_ORGANIZATION = "Organization"


def split_donor_name(full_name: str) -> tuple[str, str]:
    """Split a donor name into first and last name.

    A single token is used as both names; with more than two tokens the
    first token is the first name and the remainder is the last name.
    """
    tokens = full_name.split()
    if not tokens:
        return "", ""
    if len(tokens) == 1:
        return tokens[0], tokens[0]
    return tokens[0], " ".join(tokens[1:])


def build_submission(record: DonationRecord) -> QuickDonationRequest:
    """Build the quick donation request for ``record``.

    The reference number is the record's payment reference. The receipt
    number is a local identifier and is never sent as the reference.
    """
    first_name, last_name = split_donor_name(record.display_name)

    donor = QuickDonorDto(
        first_name=first_name,
        last_name=last_name,
        phone=record.donor_phone,
        email=record.donor_email,
        address1=record.address1,
        address2=record.address2,
        city=record.city,
        state=record.state,
        country=record.country,
        postal_code=record.postal_code,
        is_organization=record.is_organization,
        organization_name=record.organization_name if record.is_organization else None,
        donor_type=DONOR_TYPE_ORGANIZATION if record.is_organization else DONOR_TYPE_INDIVIDUAL,
    )
    donation = QuickDonationDto(
        donation_amt=record.amount,
        donation_type=record.donation_type,
        date_of_donation=record.created_at,
        payment_mode=record.payment_method,
        reference_no=record.payment_reference,
        notes=record.notes,
    )
    return QuickDonationRequest(donor=donor, donation=donation)
