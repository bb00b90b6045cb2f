"""
Pydantic schemas for records, wire payloads and API responses.

These schemas define the structure of donation data for validation and serialization.
"""

from .donation import DonationCreate, DonationRecord, DonationResponse, DonationStatistics
from .gateway import QuickDonationDto, QuickDonationRequest, QuickDonationResponse, QuickDonorDto
from .sync import SyncNowResponse, SyncPassSummary, SyncStatusResponse

__all__ = [
    "DonationCreate", "DonationRecord", "DonationResponse", "DonationStatistics",
    "QuickDonorDto", "QuickDonationDto", "QuickDonationRequest", "QuickDonationResponse",
    "SyncNowResponse", "SyncPassSummary", "SyncStatusResponse",
]
