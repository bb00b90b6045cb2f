"""Remote submission gateway for the quick donation API.

This module provides the DonationGateway class that posts locally recorded
donations to the remote donation receipt API. It includes:

- Lazily created HTTP client with bearer and idempotency headers
- Metrics collection for monitoring
- Parsing of the server-assigned donation identifier
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx
import pydantic

from donation_sync.core.errors import TransportError
from donation_sync.core.settings import Settings, settings
from donation_sync.schemas.gateway import QuickDonationRequest, QuickDonationResponse

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_SUCCESS_MIN = 200
HTTP_SUCCESS_MAX = 299
ERROR_BODY_PREVIEW = 200

TokenProvider = Callable[[], str | None]


@dataclass
class GatewayMetrics:
    """Metrics collection for gateway requests."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    min_response_time: float = float("inf")
    max_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_request(
        self, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        """Record a request metric."""
        self.request_count += 1
        self.total_response_time += response_time
        self.min_response_time = min(self.min_response_time, response_time)
        self.max_response_time = max(self.max_response_time, response_time)

        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        """Get average response time."""
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0

    def get_success_rate(self) -> float:
        """Get success rate as a percentage."""
        return (self.success_count / self.request_count * 100) if self.request_count > 0 else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "request_count": self.request_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "average_response_time": self.get_average_response_time(),
            "success_rate": self.get_success_rate(),
            "error_counts_by_type": dict(self.error_counts_by_type),
        }


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable configuration for the remote donation API."""

    base_url: str
    submit_path: str
    token: str | None
    timeout_seconds: float
    send_idempotency_key: bool


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of an accepted submission.

    ``server_id`` is None when the server accepted the donation but the
    response did not carry a usable identifier; ``note`` then says why.
    """

    server_id: int | None
    donor_full_name: str | None = None
    amount: Decimal | None = None
    note: str | None = None

    @property
    def is_soft(self) -> bool:
        return self.server_id is None


def load_gateway_config(source: Settings | None = None) -> GatewayConfig:
    """Build configuration object from settings."""

    source = source or settings
    return GatewayConfig(
        base_url=source.donation_api_base_url,
        submit_path=source.donation_api_submit_path,
        token=source.donation_api_token,
        timeout_seconds=float(source.donation_api_timeout_seconds),
        send_idempotency_key=source.donation_api_send_idempotency_key,
    )


class DonationGateway:
    """HTTP client wrapper for the quick donation endpoint."""

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            config: Gateway configuration. Defaults to the global settings.
            token_provider: Callable returning the current bearer token; takes
                precedence over the configured static token.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config or load_gateway_config()
        self._token_provider = token_provider
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._metrics = GatewayMetrics()

    @property
    def metrics(self) -> GatewayMetrics:
        return self._metrics

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    def _build_headers(self, *, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}

        token = self._token_provider() if self._token_provider else self.config.token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if idempotency_key and self.config.send_idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        return headers

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None
        idempotency_key: str | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        headers = self._build_headers(idempotency_key=params.idempotency_key)

        start_time = time.monotonic()
        success = False
        error_type = None

        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                headers=headers,
            )
            if not HTTP_SUCCESS_MIN <= response.status_code <= HTTP_SUCCESS_MAX:
                error_type = f"http_{response.status_code}"
                raise TransportError(
                    f"Donation API responded with {response.status_code}: "
                    f"{response.text[:ERROR_BODY_PREVIEW]}",
                    status_code=response.status_code,
                )
            success = True
        except httpx.TimeoutException as exc:
            error_type = "timeout"
            raise TransportError(f"Donation API request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            error_type = "network_error"
            raise TransportError(f"Donation API request failed: {exc}") from exc
        finally:
            self._metrics.record_request(time.monotonic() - start_time, success, error_type)

        return response

    async def submit(
        self,
        request: QuickDonationRequest,
        *,
        idempotency_key: str | None = None,
    ) -> SubmissionResult:
        """Submit one donation.

        Args:
            request: Wire payload built from the local record.
            idempotency_key: Stable key for the donation, normally its local id.

        Returns:
            The accepted submission. A 2xx response with an unusable body is a
            soft result with ``server_id=None``.

        Raises:
            TransportError: On timeout, connection failure or non-2xx status.
        """
        response = await self._request(
            self.RequestParams(
                method="POST",
                path=self.config.submit_path,
                json_data=request.to_wire(),
                idempotency_key=idempotency_key,
            )
        )
        return self._parse_submission(response)

    @staticmethod
    def _parse_submission(response: httpx.Response) -> SubmissionResult:
        try:
            payload = response.json()
        except ValueError:
            note = f"Unparseable response body (HTTP {response.status_code})"
            logger.warning("Donation API accepted submission but %s", note.lower())
            return SubmissionResult(server_id=None, note=note)

        if not isinstance(payload, Mapping):
            note = "Response body is not a JSON object"
            logger.warning("Donation API accepted submission but %s", note.lower())
            return SubmissionResult(server_id=None, note=note)

        try:
            parsed = QuickDonationResponse.model_validate(payload)
        except pydantic.ValidationError as exc:
            note = f"Response has no usable donorReceiptDetailId ({exc.error_count()} error(s))"
            logger.warning("Donation API accepted submission but %s", note)
            return SubmissionResult(server_id=None, note=note)

        return SubmissionResult(
            server_id=parsed.donor_receipt_detail_id,
            donor_full_name=parsed.donor_full_name,
            amount=parsed.donation_amt,
        )

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
