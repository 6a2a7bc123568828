"""Event API manager that wraps the record store and the asset store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

import httpx

from placement_errors import ApiError, AssetFetchError
from placement_types import AssetKind, TemplateRecord

logger = logging.getLogger(__name__)

# Default timeout (in seconds) for event API requests.
DEFAULT_TIMEOUT = 30

# Timeout (in seconds) for fetching template bytes into the editor.
ASSET_FETCH_TIMEOUT = 10

TEMPLATE_BUCKET = "event-templates"


@dataclass
class EventApiManager:
    """Thin client for the event REST API and its object storage."""

    base_url: str
    access_token: str
    storage_url: str = ""
    timeout: int = DEFAULT_TIMEOUT
    transport: httpx.BaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        base_clean = (self.base_url or "").rstrip("/")
        if not base_clean:
            raise RuntimeError("Event API base URL is required.")
        if not self.access_token:
            raise RuntimeError("Event API access token is required.")

        self.base_url = base_clean
        self.storage_url = (
            self.storage_url or f"{base_clean}/storage/v1"
        ).rstrip("/")
        self._client = httpx.Client(
            base_url=base_clean,
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    @property
    def api_client(self) -> httpx.Client:
        """Expose the authenticated client for advanced use cases."""

        return self._client

    def close(self) -> None:
        self._client.close()

    def list_templates(self) -> list[TemplateRecord]:
        """Return the active templates visible to the current user."""

        payload = self._request("GET", "/api/event/templates")
        return [
            self._to_template(raw)
            for raw in self._as_list(payload.get("templates"))
        ]

    def create_template(self, fields: dict[str, Any]) -> TemplateRecord:
        payload = self._request("POST", "/api/event/templates", json=fields)
        raw = payload.get("template")
        if not isinstance(raw, dict):
            raise ApiError(
                HTTPStatus.BAD_GATEWAY,
                "Template creation did not return a template.",
            )
        return self._to_template(raw)

    def get_event(self, event_id: str) -> dict[str, Any]:
        payload = self._request("GET", f"/api/event/events/{event_id}")
        event = payload.get("event")
        return event if isinstance(event, dict) else {}

    def create_event(self, fields: dict[str, Any]) -> dict[str, Any]:
        payload = self._request("POST", "/api/event/events", json=fields)
        event = payload.get("event")
        return event if isinstance(event, dict) else payload

    def update_event(self, event_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        payload = self._request(
            "PATCH",
            f"/api/event/events/{event_id}",
            json=fields,
        )
        event = payload.get("event")
        return event if isinstance(event, dict) else payload

    def upload_template_asset(
        self,
        storage_key: str,
        data: bytes,
        mime_type: str,
    ) -> str:
        """Upload ``data`` under ``storage_key`` and return its public URL."""

        url = f"{self.storage_url}/object/{TEMPLATE_BUCKET}/{storage_key}"
        try:
            response = self._client.post(
                url,
                content=data,
                headers={"Content-Type": mime_type or "application/octet-stream"},
            )
        except httpx.HTTPError as exc:
            raise ApiError(HTTPStatus.BAD_GATEWAY, f"Upload failed: {exc}") from exc
        if response.status_code >= 400:
            raise ApiError(response.status_code, self._error_reason(response))
        logger.info("Uploaded template asset %s (%d bytes)", storage_key, len(data))
        return self.public_asset_url(storage_key)

    def public_asset_url(self, storage_key: str) -> str:
        return f"{self.storage_url}/object/public/{TEMPLATE_BUCKET}/{storage_key}"

    def fetch_asset(self, url: str) -> bytes:
        """Download template bytes for the editor."""

        try:
            response = self._client.get(url, timeout=ASSET_FETCH_TIMEOUT)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AssetFetchError(f"Failed to load template: {exc}") from exc
        return response.content

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(
                HTTPStatus.BAD_GATEWAY,
                f"{method} {path} failed: {exc}",
            ) from exc

        if response.status_code >= 400:
            raise ApiError(response.status_code, self._error_reason(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(
                response.status_code,
                f"{method} {path} returned invalid JSON.",
            ) from exc
        return payload if isinstance(payload, dict) else {}

    def _error_reason(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            text = response.text.strip()
            return text or f"Request failed ({response.status_code})"

        if isinstance(data, dict):
            message = data.get("message")
            if isinstance(message, str):
                return message
            error = data.get("error")
            if error:
                return error if isinstance(error, str) else json.dumps(error)
        return json.dumps(data)

    def _to_template(self, raw: dict[str, Any]) -> TemplateRecord:
        file_type = self._as_str(raw.get("file_type")).lower()
        return TemplateRecord(
            id=self._as_str(raw.get("id")),
            name=self._as_str(raw.get("name")),
            base_file_url=self._as_str(raw.get("base_file_url")),
            file_type=AssetKind.PDF if file_type == AssetKind.PDF else AssetKind.IMAGE,
            qr_position_x=self._as_float(raw.get("qr_position_x")),
            qr_position_y=self._as_float(raw.get("qr_position_y")),
            qr_width=self._as_float(raw.get("qr_width")),
            qr_height=self._as_float(raw.get("qr_height")),
            is_active=bool(raw.get("is_active", True)),
        )

    def _as_str(self, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    def _as_list(self, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return list(value)

    def _as_float(self, value: Any) -> float | None:
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
