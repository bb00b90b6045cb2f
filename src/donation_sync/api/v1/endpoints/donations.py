# src/donation_sync/api/v1/endpoints/donations.py
"""Donation endpoints: record, list, inspect, delete and retry."""

from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Response, status

from donation_sync.api.v1.dependencies import OrchestratorDep, StoreDep
from donation_sync.schemas.donation import (
    DonationCreate,
    DonationRecord,
    DonationResponse,
    DonationStatistics,
)

router = APIRouter(prefix="/donations", tags=["donations"])

DonationFilter = Literal["all", "unsynced", "synced", "failed"]


def _to_response(record: DonationRecord) -> DonationResponse:
    return DonationResponse(**record.model_dump())


@router.post("", response_model=DonationResponse, status_code=status.HTTP_201_CREATED)
async def record_donation(payload: DonationCreate, orchestrator: OrchestratorDep) -> DonationResponse:
    """Save a donation locally; it is synced immediately when online."""
    record = await orchestrator.record_donation(payload)
    return _to_response(record)


@router.get("", response_model=list[DonationResponse])
def list_donations(
    store: StoreDep,
    filter: DonationFilter = Query("all", description="Which donations to list"),  # noqa: A002
) -> list[DonationResponse]:
    """List donations, newest first."""
    listers = {
        "all": store.list_all,
        "unsynced": store.list_unsynced,
        "synced": store.list_synced,
        "failed": store.list_failed,
    }
    return [_to_response(record) for record in listers[filter]()]


@router.get("/stats", response_model=DonationStatistics)
def donation_statistics(store: StoreDep) -> DonationStatistics:
    return store.statistics()


@router.delete("/synced")
def delete_synced_donations(
    store: StoreDep,
    older_than_days: int | None = Query(None, ge=0),
    delete_all: bool = Query(False, alias="all"),
) -> dict[str, int]:
    """Delete synced donations past the retention period.

    ``older_than_days`` overrides the configured retention; ``all`` removes
    every synced donation regardless of age.
    """
    if delete_all:
        deleted = store.delete_synced()
    else:
        deleted = store.clear_old_synced(older_than_days)
    return {"deleted": deleted}


@router.post("/retry-all")
async def retry_all_donations(orchestrator: OrchestratorDep) -> dict[str, int]:
    """Reset every failed donation to pending."""
    return {"reset": await orchestrator.retry_all()}


@router.get("/by-receipt/{receipt_number}", response_model=DonationResponse)
def get_donation_by_receipt(receipt_number: str, store: StoreDep) -> DonationResponse:
    """Look up a donation by the receipt number printed for the donor."""
    record = store.get_by_receipt_number(receipt_number)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    return _to_response(record)


@router.get("/{donation_id}", response_model=DonationResponse)
def get_donation(donation_id: str, store: StoreDep) -> DonationResponse:
    return _to_response(store.require(donation_id))


@router.delete("/{donation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_donation(donation_id: str, store: StoreDep) -> Response:
    """Delete a donation. Unknown ids are accepted."""
    store.delete(donation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{donation_id}/retry", response_model=DonationResponse)
async def retry_donation(
    donation_id: str,
    orchestrator: OrchestratorDep,
    reset_attempts: bool = Query(True),
) -> DonationResponse:
    """Return a failed donation to pending."""
    record = await orchestrator.retry(donation_id, reset_attempts=reset_attempts)
    return _to_response(record)
