"""Web surface for placing QR codes on event invitation templates."""

from __future__ import annotations

import argparse
import logging
import math
import os
import uuid
from http import HTTPStatus
from io import BytesIO
from typing import Any

from dotenv import load_dotenv
from flask import Flask, jsonify, redirect, request, send_file, url_for
from werkzeug.wrappers import Response

from event_api import EventApiManager
from interaction import PointerEvent, KeyEvent
from invite_generation import GuestInfo, InviteOptions, generate_invite, mime_type_for
from logging_utils import configure_logging
from placement_errors import (
    ApiError,
    AssetFetchError,
    FormValidationError,
    PlacementError,
    PositionRequiredError,
)
from placement_form import EventForm
from placement_types import AssetKind
from position_editor import PositionEditor

logger = logging.getLogger(__name__)

__all__ = ["run_web_app", "create_app", "create_app_from_env"]

_POINTER_EVENTS = {"pointermove", "pointerup", "touchmove", "touchend"}


def _error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"error": message}), status


def _status_for(exc: PlacementError) -> int:
    if isinstance(exc, PositionRequiredError):
        return HTTPStatus.UNPROCESSABLE_ENTITY
    if isinstance(exc, (ApiError, AssetFetchError)):
        return HTTPStatus.BAD_GATEWAY
    return HTTPStatus.BAD_REQUEST


def _as_bool(value: Any) -> bool:
    return str(value).lower() in {"1", "true", "yes", "on"}


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _as_float(body: dict[str, Any], key: str, default: float) -> float:
    value = body.get(key)
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise FormValidationError(f"'{key}' must be a number, got {value!r}.") from None
    if not math.isfinite(number):
        raise FormValidationError(f"'{key}' must be a finite number.")
    return number


def _as_int(body: dict[str, Any], key: str, default: int) -> int:
    value = body.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise FormValidationError(f"'{key}' must be a whole number, got {value!r}.") from None


def create_app(api_manager: EventApiManager) -> Flask:
    """Create the Flask app wired to the provided API manager."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv(
        "FLASK_SECRET_KEY", "qr-placement-ui")

    forms: dict[str, EventForm] = {}

    def _get_form(form_id: str) -> EventForm | None:
        return forms.get(form_id)

    def _form_state(form_id: str, form: EventForm) -> dict[str, Any]:
        asset = form.preview_asset
        return {
            "form_id": form_id,
            "template_id": form.draft.template_id or None,
            "asset": (
                {"kind": asset.kind.value, "name": asset.name, "url": asset.url or None}
                if asset
                else None
            ),
            "qr_position": form.qr_position.to_dict(),
            "position_saved": form.position_saved,
            "editor_open": form.editor is not None,
        }

    def _with_editor(form_id: str) -> tuple[EventForm | None, PositionEditor | None]:
        form = _get_form(form_id)
        if form is None:
            return None, None
        return form, form.editor

    @app.errorhandler(PlacementError)
    def placement_error(exc: PlacementError):  # pyright: ignore[reportUnusedFunction]
        logger.warning("Request failed: %s", exc)
        return _error(str(exc), _status_for(exc))

    @app.route("/", methods=["GET"])
    def index() -> Response:  # pyright: ignore[reportUnusedFunction]
        return redirect(url_for("templates_index"))

    @app.route("/templates", methods=["GET"])
    # pyright: ignore[reportUnusedFunction]
    def templates_index() -> Any:
        templates = api_manager.list_templates()
        return jsonify(
            {
                "templates": [
                    {
                        "id": t.id,
                        "name": t.name,
                        "file_type": t.file_type.value,
                        "base_file_url": t.base_file_url,
                    }
                    for t in templates
                ]
            }
        )

    @app.route("/forms", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def forms_create() -> Any:
        form = EventForm(
            api_manager.list_templates(),
            fetch_asset=api_manager.fetch_asset,
        )
        body = _json_body()
        event_id = body.get("event_id")
        if event_id:
            form.load_event(api_manager.get_event(event_id))
        form_id = uuid.uuid4().hex
        forms[form_id] = form
        return jsonify(_form_state(form_id, form)), HTTPStatus.CREATED

    @app.route("/forms/<form_id>", methods=["GET", "DELETE"])
    # pyright: ignore[reportUnusedFunction]
    def forms_show(form_id: str) -> Any:
        form = _get_form(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        if request.method == "DELETE":
            form.close_editor()
            forms.pop(form_id, None)
            return "", HTTPStatus.NO_CONTENT
        return jsonify(_form_state(form_id, form))

    @app.route("/forms/<form_id>/fields", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def forms_fields(form_id: str) -> Any:
        form = _get_form(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        form.update_fields(**_json_body())
        return jsonify(_form_state(form_id, form))

    @app.route("/forms/<form_id>/template", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def forms_template(form_id: str) -> Any:
        form = _get_form(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        body = _json_body()
        form.select_template(str(body.get("template_id") or ""))
        return jsonify(_form_state(form_id, form))

    @app.route("/forms/<form_id>/asset", methods=["POST", "DELETE"])
    # pyright: ignore[reportUnusedFunction]
    def forms_asset(form_id: str) -> Any:
        form = _get_form(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        if request.method == "DELETE":
            form.remove_custom_asset()
            return jsonify(_form_state(form_id, form))

        upload = request.files.get("file")
        if upload is None:
            return _error("No template file was uploaded.", HTTPStatus.BAD_REQUEST)
        form.attach_custom_asset(
            upload.filename or "template",
            upload.mimetype or "",
            upload.read(),
        )
        return jsonify(_form_state(form_id, form))

    @app.route("/forms/<form_id>/editor", methods=["GET", "POST"])
    # pyright: ignore[reportUnusedFunction]
    def editor_state(form_id: str) -> Any:
        form, editor = _with_editor(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        if request.method == "POST":
            editor = form.open_editor()
        if editor is None:
            return _error("The position editor is not open.", HTTPStatus.CONFLICT)
        return jsonify(editor.snapshot())

    @app.route("/forms/<form_id>/editor/bitmap", methods=["GET"])
    # pyright: ignore[reportUnusedFunction]
    def editor_bitmap(form_id: str) -> Any:
        _, editor = _with_editor(form_id)
        if editor is None or editor.bitmap is None:
            return _error("No rendered page is available.", HTTPStatus.NOT_FOUND)
        mimetype = "image/png"
        if editor.asset.kind is AssetKind.IMAGE and editor.asset.mime_type:
            mimetype = editor.asset.mime_type
        return send_file(BytesIO(editor.bitmap.png), mimetype=mimetype)

    @app.route("/forms/<form_id>/editor/page", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def editor_page(form_id: str) -> Any:
        _, editor = _with_editor(form_id)
        if editor is None:
            return _error("The position editor is not open.", HTTPStatus.CONFLICT)
        body = _json_body()
        action = body.get("action")
        if action == "next":
            editor.next_page()
        elif action == "prev":
            editor.previous_page()
        elif body.get("page") is not None:
            editor.go_to_page(_as_int(body, "page", editor.current_page))
        return jsonify(editor.snapshot())

    @app.route("/forms/<form_id>/editor/layout", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def editor_layout(form_id: str) -> Any:
        _, editor = _with_editor(form_id)
        if editor is None:
            return _error("The position editor is not open.", HTTPStatus.CONFLICT)
        body = _json_body()
        editor.layout(
            _as_float(body, "left", 0.0),
            _as_float(body, "top", 0.0),
            _as_float(body, "width", editor.viewport.width),
            _as_float(body, "height", editor.viewport.height),
        )
        return jsonify(editor.snapshot())

    @app.route("/forms/<form_id>/editor/toolbar", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def editor_toolbar(form_id: str) -> Any:
        _, editor = _with_editor(form_id)
        if editor is None:
            return _error("The position editor is not open.", HTTPStatus.CONFLICT)
        body = _json_body()
        action = body.get("action")
        if action == "zoom_in":
            editor.zoom_in()
        elif action == "zoom_out":
            editor.zoom_out()
        elif action == "reset":
            editor.reset_position()
        elif action == "grid":
            editor.toggle_grid()
        elif action == "lock":
            editor.toggle_aspect_lock()
        elif action == "set_x":
            editor.set_x(_as_float(body, "value", 0.0))
        elif action == "set_y":
            editor.set_y(_as_float(body, "value", 0.0))
        elif action == "set_size":
            editor.set_size(_as_float(body, "value", 0.0))
        else:
            return _error(f"Unknown toolbar action '{action}'.", HTTPStatus.BAD_REQUEST)
        return jsonify(editor.snapshot())

    @app.route("/forms/<form_id>/editor/input", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def editor_input(form_id: str) -> Any:
        form, editor = _with_editor(form_id)
        if form is None or editor is None:
            return _error("The position editor is not open.", HTTPStatus.CONFLICT)
        body = _json_body()
        kind = body.get("type")

        if kind == "keydown":
            editor.key_down(
                KeyEvent(
                    key=str(body.get("key") or ""),
                    shift=_as_bool(body.get("shift")),
                    ctrl=_as_bool(body.get("ctrl")),
                    meta=_as_bool(body.get("meta")),
                )
            )
        else:
            event = PointerEvent(
                client_x=_as_float(body, "client_x", 0.0),
                client_y=_as_float(body, "client_y", 0.0),
                touches=_as_int(body, "touches", 1),
            )
            if kind == "pointerdown":
                editor.pointer_down(event)
            elif kind == "touchstart":
                editor.touch_start(event)
            elif kind in _POINTER_EVENTS:
                editor.window.emit(kind, event)
            else:
                return _error(f"Unknown input type '{kind}'.", HTTPStatus.BAD_REQUEST)

        # Escape and Ctrl+Enter may have closed the editor.
        if form.editor is None:
            return jsonify(_form_state(form_id, form))
        return jsonify(editor.snapshot())

    @app.route("/forms/<form_id>/editor/<action>", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def editor_action(form_id: str, action: str) -> Any:
        form, editor = _with_editor(form_id)
        if form is None or editor is None:
            return _error("The position editor is not open.", HTTPStatus.CONFLICT)
        if action == "save":
            if editor.save() is None:
                return _error(
                    "The template is not ready; the position cannot be saved yet.",
                    HTTPStatus.CONFLICT,
                )
        elif action == "cancel":
            editor.cancel()
        elif action == "retry":
            editor.retry()
            return jsonify(editor.snapshot())
        else:
            return _error(f"Unknown editor action '{action}'.", HTTPStatus.NOT_FOUND)
        return jsonify(_form_state(form_id, form))

    @app.route("/forms/<form_id>/submit", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def forms_submit(form_id: str) -> Any:
        form = _get_form(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        body = _json_body()
        event_id = body.get("event_id") or None
        event = form.submit(api_manager, event_id)
        status = HTTPStatus.OK if event_id else HTTPStatus.CREATED
        return jsonify({"event": event, **_form_state(form_id, form)}), status

    @app.route("/forms/<form_id>/invite-preview", methods=["POST"])
    # pyright: ignore[reportUnusedFunction]
    def forms_invite_preview(form_id: str) -> Any:
        form = _get_form(form_id)
        if form is None:
            return _error("Unknown form.", HTTPStatus.NOT_FOUND)
        asset = form.preview_asset
        if asset is None:
            return _error("Attach or select a template first.", HTTPStatus.BAD_REQUEST)
        if not form.position_saved:
            raise PositionRequiredError(
                "Set the QR code position on the template before previewing."
            )

        body = _json_body()
        options = InviteOptions(
            format=str(body.get("format") or "png"),
            include_guest_info=_as_bool(body.get("include_guest_info")),
        )
        guest = GuestInfo(
            full_name=str(body.get("guest_name") or ""),
            email=str(body.get("guest_email") or ""),
        )
        data = asset.data if asset.data is not None else api_manager.fetch_asset(asset.url)
        invite = generate_invite(
            data,
            asset.kind,
            form.qr_position,
            str(body.get("payload") or "preview"),
            options,
            guest,
        )
        return send_file(
            BytesIO(invite),
            mimetype=mime_type_for(options.format),
            as_attachment=True,
            download_name=f"invite_preview.{options.format}",
        )

    return app


def _api_manager_from_env() -> EventApiManager:
    return EventApiManager(
        base_url=os.getenv("EVENT_API_URL", ""),
        access_token=os.getenv("EVENT_API_TOKEN", ""),
        storage_url=os.getenv("EVENT_STORAGE_URL", ""),
    )


def create_app_from_env() -> Flask:
    """Create the Flask app using EVENT_* environment variables."""
    load_dotenv()
    return create_app(_api_manager_from_env())


def run_web_app(
    api_manager: EventApiManager,
    host: str,
    port: int,
) -> None:
    """Launch the Flask app serving the placement editor API."""
    app = create_app(api_manager)

    use_reloader_env = os.getenv("USE_RELOADER")
    use_reloader = (
        str(use_reloader_env).lower() in {"1", "true", "yes", "on"}
        if use_reloader_env is not None
        else False
    )
    app.run(host=host, port=port, debug=False, use_reloader=use_reloader)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the web UI."""
    parser = argparse.ArgumentParser(
        description="QR placement editor web UI"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host/IP for the web UI (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=4000,
        help="Port for the web UI (default: 4000).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log debug output to the console as well as the log file.",
    )

    args = parser.parse_args(argv)
    load_dotenv()
    configure_logging(debug=args.debug)

    run_web_app(
        api_manager=_api_manager_from_env(),
        host=args.host,
        port=args.port,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
