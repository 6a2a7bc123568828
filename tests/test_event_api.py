# pyright: reportPrivateUsage=false
import json
import unittest

import httpx

from event_api import EventApiManager
from placement_errors import ApiError, AssetFetchError
from placement_types import AssetKind


def _manager(handler) -> EventApiManager:
    return EventApiManager(
        base_url="http://events.test/",
        access_token="secret",
        transport=httpx.MockTransport(handler),
    )


class EventApiConfigTests(unittest.TestCase):
    def test_requires_base_url_and_token(self) -> None:
        with self.assertRaises(RuntimeError):
            EventApiManager(base_url="", access_token="secret")
        with self.assertRaises(RuntimeError):
            EventApiManager(base_url="http://events.test", access_token="")

    def test_storage_url_defaults_to_base(self) -> None:
        manager = _manager(lambda request: httpx.Response(200, json={}))
        self.assertEqual(manager.base_url, "http://events.test")
        self.assertEqual(manager.storage_url, "http://events.test/storage/v1")


class EventApiTemplateTests(unittest.TestCase):
    def test_list_templates_parses_records(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "templates": [
                        {
                            "id": "tpl-1",
                            "name": "Gala",
                            "base_file_url": "http://files/gala.pdf",
                            "file_type": "PDF",
                            "qr_position_x": "12.5",
                            "qr_width": None,
                        },
                        {"id": 7, "name": "Plain"},
                    ]
                },
            )

        templates = _manager(handler).list_templates()
        self.assertEqual(seen[0].url.path, "/api/event/templates")
        self.assertEqual(seen[0].headers["Authorization"], "Bearer secret")
        self.assertEqual(len(templates), 2)
        self.assertIs(templates[0].file_type, AssetKind.PDF)
        self.assertEqual(templates[0].qr_position_x, 12.5)
        self.assertIsNone(templates[0].qr_width)
        self.assertEqual(templates[1].id, "7")
        self.assertIs(templates[1].file_type, AssetKind.IMAGE)

    def test_create_template_posts_fields(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            self.assertEqual(body["qr_position_x"], 10)
            return httpx.Response(201, json={"template": {"id": "tpl-2", **body}})

        template = _manager(handler).create_template(
            {"name": "Custom", "base_file_url": "u", "qr_position_x": 10}
        )
        self.assertEqual(template.id, "tpl-2")
        self.assertEqual(template.qr_position_x, 10.0)

    def test_create_template_without_record_fails(self) -> None:
        manager = _manager(lambda request: httpx.Response(200, json={}))
        with self.assertRaises(ApiError):
            manager.create_template({"name": "Custom"})


class EventApiEventTests(unittest.TestCase):
    def test_create_and_update_event(self) -> None:
        calls: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            return httpx.Response(200, json={"event": {"id": "evt-1"}})

        manager = _manager(handler)
        self.assertEqual(manager.create_event({"name": "Gala"}), {"id": "evt-1"})
        self.assertEqual(manager.update_event("evt-1", {"name": "Gala"}), {"id": "evt-1"})
        self.assertEqual(manager.get_event("evt-1"), {"id": "evt-1"})
        self.assertEqual(
            calls,
            [
                ("POST", "/api/event/events"),
                ("PATCH", "/api/event/events/evt-1"),
                ("GET", "/api/event/events/evt-1"),
            ],
        )

    def test_error_message_is_surfaced(self) -> None:
        manager = _manager(
            lambda request: httpx.Response(400, json={"message": "Name is required"})
        )
        with self.assertRaises(ApiError) as ctx:
            manager.create_event({})
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(str(ctx.exception), "Name is required")

    def test_error_field_and_plain_text(self) -> None:
        manager = _manager(
            lambda request: httpx.Response(403, json={"error": {"code": "denied"}})
        )
        with self.assertRaises(ApiError) as ctx:
            manager.get_event("evt-1")
        self.assertEqual(str(ctx.exception), '{"code": "denied"}')

        manager = _manager(lambda request: httpx.Response(500, text="boom"))
        with self.assertRaises(ApiError) as ctx:
            manager.get_event("evt-1")
        self.assertEqual(str(ctx.exception), "boom")

    def test_invalid_json_is_an_error(self) -> None:
        manager = _manager(lambda request: httpx.Response(200, text="<html>"))
        with self.assertRaises(ApiError):
            manager.list_templates()

    def test_transport_failure_is_bad_gateway(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(ApiError) as ctx:
            _manager(handler).list_templates()
        self.assertEqual(ctx.exception.status_code, 502)


class EventApiStorageTests(unittest.TestCase):
    def test_upload_returns_public_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "ok"})

        url = _manager(handler).upload_template_asset(
            "custom-templates/1-a.png", b"png", "image/png"
        )
        self.assertEqual(
            seen[0].url.path,
            "/storage/v1/object/event-templates/custom-templates/1-a.png",
        )
        self.assertEqual(seen[0].headers["Content-Type"], "image/png")
        self.assertEqual(seen[0].content, b"png")
        self.assertEqual(
            url,
            "http://events.test/storage/v1/object/public/event-templates/custom-templates/1-a.png",
        )

    def test_fetch_asset(self) -> None:
        manager = _manager(lambda request: httpx.Response(200, content=b"bytes"))
        self.assertEqual(manager.fetch_asset("http://files/t.png"), b"bytes")

    def test_fetch_asset_failure(self) -> None:
        manager = _manager(lambda request: httpx.Response(404, text="missing"))
        with self.assertRaises(AssetFetchError):
            manager.fetch_asset("http://files/t.png")


if __name__ == "__main__":
    unittest.main()
