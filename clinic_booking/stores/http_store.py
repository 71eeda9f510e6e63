"""Appointment store adapter for a remote JSON/HTTP system of record."""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from clinic_booking.config import Settings, settings
from clinic_booking.core.exceptions import (
    ConflictException,
    NotFoundException,
    StorageException,
    ValidationException,
)
from clinic_booking.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentUpdate,
)
from clinic_booking.stores.base import AppointmentStore

logger = structlog.get_logger()

_STATUS_ERRORS = {
    400: ValidationException,
    404: NotFoundException,
    409: ConflictException,
    422: ValidationException,
}


def _error_message(response: httpx.Response) -> str:
    """Extract a human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            if isinstance(body.get(key), str):
                return body[key]
    return response.reason_phrase


class HttpAppointmentStore(AppointmentStore):
    """
    Store backed by a REST resource at ``{base_url}/appointments``.

    Timeouts are enforced by the httpx transport. Transport failures and
    unexpected responses surface as ``StorageException``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize adapter; an explicit client overrides base_url/timeout."""
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "HttpAppointmentStore":
        """Build the adapter from application settings."""
        return cls(
            base_url=config.store_base_url,
            api_key=config.store_api_key,
            timeout=config.store_timeout,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("store_request_timeout", method=method, url=url, error=str(e))
            raise StorageException("Appointment store timed out") from e
        except httpx.HTTPError as e:
            logger.error("store_request_failed", method=method, url=url, error=str(e))
            raise StorageException("Appointment store is unreachable") from e

        if response.is_success:
            return response

        message = _error_message(response)
        logger.warning(
            "store_request_rejected",
            method=method,
            url=url,
            status_code=response.status_code,
            message=message,
        )
        exc_class = _STATUS_ERRORS.get(response.status_code, StorageException)
        raise exc_class(message)

    @staticmethod
    def _parse(payload: Any) -> Appointment:
        try:
            return Appointment.model_validate(payload)
        except ValidationError as e:
            raise StorageException("Appointment store returned a malformed record") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StorageException("Appointment store returned invalid JSON") from e

    async def list_appointments(
        self,
        filters: AppointmentFilters | None = None,
    ) -> list[Appointment]:
        """List appointments matching the filters."""
        params = (filters or AppointmentFilters()).model_dump(mode="json", exclude_none=True)
        response = await self._request("GET", "/appointments", params=params)
        payload = self._json(response)
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        if not isinstance(payload, list):
            raise StorageException("Appointment store returned a malformed list")
        return [self._parse(item) for item in payload]

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Get appointment by ID."""
        response = await self._request("GET", f"/appointments/{appointment_id}")
        return self._parse(self._json(response))

    async def create_appointment(
        self,
        data: AppointmentCreate,
        created_by: str | None = None,
    ) -> Appointment:
        """Create appointment on the remote store."""
        body = data.model_dump(mode="json")
        if created_by:
            body["created_by"] = created_by
        response = await self._request("POST", "/appointments", json=body)
        return self._parse(self._json(response))

    async def update_appointment(
        self,
        appointment_id: str,
        data: AppointmentUpdate,
    ) -> Appointment:
        """Send only the fields set on the patch."""
        body = data.model_dump(mode="json", exclude_unset=True)
        response = await self._request("PATCH", f"/appointments/{appointment_id}", json=body)
        return self._parse(self._json(response))

    async def delete_appointment(self, appointment_id: str) -> None:
        """Delete appointment on the remote store."""
        await self._request("DELETE", f"/appointments/{appointment_id}")

    async def check_connection(self) -> bool:
        """Check if the remote store answers."""
        try:
            response = await self.client.get("/appointments", params={"limit": 1})
            return response.status_code < 500
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self.client.aclose()
