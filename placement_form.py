"""Event form draft that owns the confirmed QR position."""

from __future__ import annotations

import logging
import re
import time
import unicodedata
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Sequence

from event_api import EventApiManager
from interaction import EventHub
from placement_errors import (
    FormValidationError,
    PositionRequiredError,
    UploadRejectedError,
)
from placement_types import AssetKind, Position, TemplateAsset, TemplateRecord
from position_editor import AssetFetcher, PositionEditor

logger = logging.getLogger(__name__)

DEFAULT_EVENT_QR_POSITION = Position(x=50, y=70, width=15, height=15, rotation=0)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024

ALLOWED_MIME_TYPES: dict[str, AssetKind] = {
    "image/png": AssetKind.IMAGE,
    "image/jpeg": AssetKind.IMAGE,
    "image/jpg": AssetKind.IMAGE,
    "application/pdf": AssetKind.PDF,
}

CUSTOM_TEMPLATE_PREFIX = "custom-templates"

_UNSAFE_CHARS = re.compile(r"[^\w.-]+", re.ASCII)
_REPEATED_UNDERSCORES = re.compile(r"_+")


def sanitize_storage_name(filename: str) -> str:
    """Return a URL-safe, lower-case version of ``filename``."""

    decomposed = unicodedata.normalize("NFD", filename or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    safe = _UNSAFE_CHARS.sub("_", stripped)
    safe = _REPEATED_UNDERSCORES.sub("_", safe).strip("_")
    return safe.lower()


def build_storage_key(filename: str, now_ms: int | None = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{CUSTOM_TEMPLATE_PREFIX}/{stamp}-{sanitize_storage_name(filename) or 'template'}"


def _parse_datetime(value: str) -> datetime | None:
    text = (value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class EventDraft:
    """Editable event fields kept alongside the QR placement."""

    name: str = ""
    description: str = ""
    starts_at: str = ""
    ends_at: str = ""
    venue: str = ""
    status: str = "draft"
    template_id: str = ""
    max_guests: int | None = None
    pass_max_uses: int = 1


class EventForm:
    """Owns the draft event, its visual asset and its confirmed position."""

    def __init__(
        self,
        templates: Sequence[TemplateRecord] = (),
        *,
        default_position: Position = DEFAULT_EVENT_QR_POSITION,
        fetch_asset: AssetFetcher | None = None,
    ) -> None:
        self.templates = list(templates)
        self.default_position = default_position
        self.draft = EventDraft()
        self.qr_position = default_position
        self.position_saved = False
        self.custom_asset: TemplateAsset | None = None
        self.editor: PositionEditor | None = None
        self._fetch_asset = fetch_asset

    # -- template and asset selection ----------------------------------------

    def find_template(self, template_id: str) -> TemplateRecord | None:
        for template in self.templates:
            if template.id == template_id:
                return template
        return None

    @property
    def selected_template(self) -> TemplateRecord | None:
        if not self.draft.template_id:
            return None
        return self.find_template(self.draft.template_id)

    @property
    def preview_asset(self) -> TemplateAsset | None:
        """Return the visual asset the QR code will be placed on, if any."""

        if self.custom_asset is not None:
            return self.custom_asset
        template = self.selected_template
        if template is not None and template.base_file_url:
            return template.asset()
        return None

    def _reset_position(self) -> None:
        self.qr_position = self.default_position
        self.position_saved = False

    def select_template(self, template_id: str) -> None:
        self.draft.template_id = template_id
        template = self.find_template(template_id) if template_id else None
        if template is not None:
            self.qr_position = template.qr_position(self.default_position)
            self.position_saved = True
        else:
            self._reset_position()
        self.custom_asset = None

    def attach_custom_asset(self, filename: str, mime_type: str, data: bytes) -> TemplateAsset:
        """Accept an uploaded template; any previous placement is dropped."""

        kind = ALLOWED_MIME_TYPES.get((mime_type or "").lower())
        if kind is None:
            raise UploadRejectedError(
                f"Unsupported template format '{mime_type}'. "
                "Use PNG, JPEG or PDF."
            )
        if len(data) > MAX_UPLOAD_BYTES:
            raise UploadRejectedError(
                f"Template is {len(data)} bytes; the limit is {MAX_UPLOAD_BYTES} bytes."
            )
        if not data:
            raise UploadRejectedError("Template file is empty.")

        self.close_editor()
        self._reset_position()
        self.custom_asset = TemplateAsset(
            kind=kind,
            data=data,
            mime_type=mime_type.lower(),
            name=filename,
        )
        self.draft.template_id = ""
        logger.debug("Attached custom %s template %s", kind, filename)
        return self.custom_asset

    def remove_custom_asset(self) -> None:
        self.close_editor()
        self.custom_asset = None
        self._reset_position()

    # -- editor ----------------------------------------------------------------

    def open_editor(self, *, window: EventHub | None = None) -> PositionEditor:
        asset = self.preview_asset
        if asset is None:
            raise FormValidationError("Attach or select a template before placing the QR code.")

        self.close_editor()
        self.editor = PositionEditor(
            asset,
            default=self.default_position,
            initial=self.qr_position if self.position_saved else None,
            on_save=self._on_editor_save,
            on_cancel=self._on_editor_cancel,
            window=window,
            fetch_asset=self._fetch_asset,
        )
        self.editor.open()
        return self.editor

    def _on_editor_save(self, position: Position) -> None:
        self.qr_position = position
        self.position_saved = True
        self.editor = None

    def _on_editor_cancel(self) -> None:
        self.editor = None

    def close_editor(self) -> None:
        if self.editor is not None:
            self.editor.close()
            self.editor = None

    # -- persistence -------------------------------------------------------------

    def load_event(
        self,
        record: dict[str, Any],
        template: dict[str, Any] | None = None,
    ) -> None:
        """Seed the draft from a stored event for edit mode.

        ``template`` defaults to the record's embedded ``template`` object.
        """

        self.draft = EventDraft(
            name=record.get("name") or "",
            description=record.get("description") or "",
            starts_at=record.get("starts_at") or "",
            ends_at=record.get("ends_at") or "",
            venue=record.get("venue") or "",
            status=record.get("status") or "draft",
            template_id=record.get("template_id") or "",
            max_guests=record.get("max_guests") or None,
            pass_max_uses=record.get("pass_max_uses") or 1,
        )
        self.custom_asset = None

        embedded = record.get("qr_position")
        if template is None:
            template = record.get("template")
        if isinstance(embedded, dict):
            self.qr_position = Position.from_dict(embedded)
            self.position_saved = True
        elif isinstance(template, dict):
            self.qr_position = Position.from_template_fields(
                template, self.default_position
            )
            self.position_saved = True
        else:
            self._reset_position()

    def update_fields(self, **fields: Any) -> None:
        known = {k: v for k, v in fields.items() if k in EventDraft.__dataclass_fields__}
        known.pop("template_id", None)
        self.draft = replace(self.draft, **known)

    def validate(self) -> None:
        if not self.draft.name.strip():
            raise FormValidationError("Event name is required.")
        starts = _parse_datetime(self.draft.starts_at)
        ends = _parse_datetime(self.draft.ends_at)
        if starts is None or ends is None:
            raise FormValidationError("Event start and end times are required.")
        if ends <= starts:
            raise FormValidationError("Event end must be after its start.")
        if self.preview_asset is not None and not self.position_saved:
            raise PositionRequiredError(
                "Set the QR code position on the template before saving."
            )

    def build_event_payload(self, template_id: str | None) -> dict[str, Any]:
        draft = self.draft
        return {
            "name": draft.name.strip(),
            "description": draft.description.strip() or None,
            "starts_at": _parse_datetime(draft.starts_at).isoformat(),  # type: ignore[union-attr]
            "ends_at": _parse_datetime(draft.ends_at).isoformat(),  # type: ignore[union-attr]
            "venue": draft.venue.strip() or None,
            "status": draft.status,
            "template_id": template_id or None,
            "max_guests": draft.max_guests,
            "pass_max_uses": draft.pass_max_uses or 1,
            "qr_position": self.qr_position.to_dict() if self.position_saved else None,
        }

    def submit(
        self,
        api: EventApiManager,
        event_id: str | None = None,
        *,
        clock_ms: Callable[[], int] | None = None,
    ) -> dict[str, Any]:
        """Validate, upload any custom template and persist the event."""

        self.validate()

        template_id = self.draft.template_id
        custom = self.custom_asset
        if custom is not None and custom.data is not None:
            now_ms = clock_ms() if clock_ms is not None else None
            storage_key = build_storage_key(custom.name, now_ms)
            public_url = api.upload_template_asset(
                storage_key,
                custom.data,
                custom.mime_type,
            )
            template = api.create_template(
                {
                    "name": f"{self.draft.name.strip()} - Custom Template",
                    "base_file_url": public_url,
                    "file_type": custom.kind.value,
                    **self.qr_position.to_template_fields(),
                }
            )
            if template.id:
                template_id = template.id
                self.templates.append(template)

        payload = self.build_event_payload(template_id)
        if event_id:
            event = api.update_event(event_id, payload)
        else:
            event = api.create_event(payload)

        if template_id:
            self.draft.template_id = template_id
            self.custom_asset = None
        self.close_editor()
        logger.info("Saved event %s", event.get("id", event_id or ""))
        return event
