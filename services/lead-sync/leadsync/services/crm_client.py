"""
LeadConnector (HighLevel) CRM gateway
"""
import httpx
from fastapi import Depends
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog

from leadsync.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class GatewayResult:
    """Outcome of a single CRM call; non-2xx is a result, not an exception"""

    def __init__(self, operation: str, status_code: int, body: Any):
        self.operation = operation
        self.status_code = status_code
        self.body = body

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def resource_id(self) -> Optional[str]:
        if not isinstance(self.body, dict):
            return None
        candidates = [self.body.get("id")]
        for key in ("contact", "opportunity", "note", "data", "result"):
            nested = self.body.get(key)
            if isinstance(nested, dict):
                candidates.append(nested.get("id"))
        for candidate in candidates:
            if candidate:
                return str(candidate)
        return None


class CRMClient:
    """Client for the LeadConnector v2 REST API"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.location_id = settings.GHL_LOCATION_ID
        self.client = httpx.AsyncClient(
            base_url=settings.GHL_API_URL.rstrip("/"),
            timeout=settings.GHL_TIMEOUT,
            headers={
                "Authorization": f"Bearer {settings.GHL_API_KEY}",
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Version": settings.GHL_API_VERSION,
                "Location-Id": settings.GHL_LOCATION_ID,
            },
            transport=transport,
        )

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> GatewayResult:
        # Transport errors (timeouts, connection failures) propagate to the caller
        response = await self.client.post(path, json=payload)
        try:
            body = response.json()
        except ValueError:
            body = response.text

        result = GatewayResult(operation, response.status_code, body)
        if not result.ok:
            logger.error(
                "crm_request_failed",
                operation=operation,
                path=path,
                status_code=response.status_code,
                body=body,
            )
        return result

    def custom_fields(self, values: Dict[str, Any]) -> List[Dict[str, str]]:
        """Custom field entries as the upsert endpoint expects them: string values keyed by field id"""
        fields = []
        for field_id, value in values.items():
            if not field_id or value is None or value == "":
                continue
            fields.append({"id": field_id, "value": str(value)})
        return fields

    async def upsert_contact(
        self,
        first_name: str,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        custom_values: Optional[Dict[str, Any]] = None,
    ) -> GatewayResult:
        payload: Dict[str, Any] = {"locationId": self.location_id, "firstName": first_name}
        if last_name:
            payload["lastName"] = last_name
        if phone:
            payload["phone"] = phone
        if email:
            payload["email"] = email

        fields = self.custom_fields(custom_values or {})
        if fields:
            payload[self.settings.GHL_CUSTOM_FIELDS_KEY] = fields

        return await self._post("upsert_contact", "/contacts/upsert", payload)

    async def create_note(self, contact_id: str, body: str) -> GatewayResult:
        return await self._post("create_note", f"/contacts/{contact_id}/notes", {"body": body})

    async def create_opportunity(
        self,
        contact_id: str,
        name: str,
        assigned_to: Optional[str] = None,
        source: Optional[str] = None,
    ) -> GatewayResult:
        payload: Dict[str, Any] = {
            "locationId": self.location_id,
            "contactId": contact_id,
            "pipelineId": self.settings.GHL_PIPELINE_ID,
            "pipelineStageId": self.settings.GHL_STAGE_ID_OPORTUNIDAD_RECIBIDA,
            "name": name,
            "status": "open",
        }
        if assigned_to:
            payload["assignedTo"] = assigned_to
        if source:
            payload["source"] = source

        return await self._post("create_opportunity", "/opportunities/", payload)

    async def aclose(self) -> None:
        await self.client.aclose()


async def get_crm_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[CRMClient]:
    """FastAPI dependency: one client per request, closed afterwards"""
    client = CRMClient(settings)
    try:
        yield client
    finally:
        await client.aclose()
