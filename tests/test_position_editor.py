import unittest
from io import BytesIO
from unittest.mock import Mock, patch

import fitz
from PIL import Image

from interaction import KeyEvent, Mode, PointerEvent
from placement_errors import AssetFetchError, DocumentLoadError, PageRenderError
from placement_types import AssetKind, Bitmap, Position, TemplateAsset
from position_editor import MAX_ZOOM, MIN_ZOOM, EditorStatus, PositionEditor
from rasterizers.base import Rasterizer

DEFAULT = Position(50, 70, 15, 15)


def _png_bytes(width: int = 400, height: int = 400) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


def _pdf_bytes(pages: int = 3) -> bytes:
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=200, height=100)
    data = doc.tobytes()
    doc.close()
    return data


class _FlakyRasterizer(Rasterizer):
    """Three-page rasterizer whose listed pages fail to render."""

    failing_pages: set[int] = set()

    def load(self) -> int:
        return 3

    def render(self, page: int = 1) -> Bitmap:
        if page in self.failing_pages:
            raise PageRenderError(page, f"Page {page} is corrupt.")
        return Bitmap(png=b"page", width=200, height=100, page=page)


def _editor(
    asset: TemplateAsset | None = None,
    initial: Position | None = None,
    **kwargs: object,
) -> tuple[PositionEditor, Mock, Mock]:
    on_save = Mock()
    on_cancel = Mock()
    editor = PositionEditor(
        asset or TemplateAsset(kind=AssetKind.IMAGE, data=_png_bytes()),
        default=DEFAULT,
        initial=initial,
        on_save=on_save,
        on_cancel=on_cancel,
        **kwargs,  # type: ignore[arg-type]
    )
    return editor, on_save, on_cancel


class EditorLoadingTests(unittest.TestCase):
    def test_image_asset_opens_ready(self) -> None:
        editor, _, _ = _editor()
        self.assertIs(editor.open(), EditorStatus.READY)
        self.assertEqual(editor.total_pages, 1)
        assert editor.bitmap is not None
        self.assertEqual((editor.bitmap.width, editor.bitmap.height), (400, 400))
        self.assertEqual(editor.viewport.width, 400)
        self.assertEqual(editor.position, DEFAULT)

    def test_pdf_asset_reports_pages(self) -> None:
        editor, _, _ = _editor(TemplateAsset(kind=AssetKind.PDF, data=_pdf_bytes()))
        editor.open()
        self.assertIs(editor.status, EditorStatus.READY)
        self.assertEqual(editor.total_pages, 3)
        self.assertEqual(editor.current_page, 1)
        assert editor.bitmap is not None
        self.assertEqual(editor.bitmap.width, 400)

    def test_url_asset_uses_fetcher(self) -> None:
        fetch = Mock(return_value=_png_bytes())
        editor, _, _ = _editor(
            TemplateAsset(kind=AssetKind.IMAGE, url="http://files/t.png"),
            fetch_asset=fetch,
        )
        editor.open()
        fetch.assert_called_once_with("http://files/t.png")
        self.assertIs(editor.status, EditorStatus.READY)

    def test_fetch_failure_is_a_load_error(self) -> None:
        fetch = Mock(side_effect=AssetFetchError("timed out"))
        editor, _, _ = _editor(
            TemplateAsset(kind=AssetKind.PDF, url="http://files/t.pdf"),
            fetch_asset=fetch,
        )
        editor.open()
        self.assertIs(editor.status, EditorStatus.ERROR)
        self.assertIsInstance(editor.error, DocumentLoadError)

    def test_bad_bytes_then_retry_and_replace(self) -> None:
        editor, _, _ = _editor(TemplateAsset(kind=AssetKind.IMAGE, data=b"not an image"))
        editor.open()
        self.assertIs(editor.status, EditorStatus.ERROR)
        self.assertIsInstance(editor.error, DocumentLoadError)

        self.assertIs(editor.retry(), EditorStatus.ERROR)
        editor.load_asset(TemplateAsset(kind=AssetKind.IMAGE, data=_png_bytes()))
        self.assertIs(editor.status, EditorStatus.READY)
        self.assertIsNone(editor.error)

    def test_initial_position_is_clamped(self) -> None:
        editor, _, _ = _editor(initial=Position(98, 98, 15, 15))
        self.assertTrue(editor.position.right <= 100)
        self.assertTrue(editor.position.bottom <= 100)


class EditorPagingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.editor, _, _ = _editor(
            TemplateAsset(kind=AssetKind.PDF, data=_pdf_bytes())
        )
        self.editor.open()

    def test_page_navigation(self) -> None:
        self.assertTrue(self.editor.next_page())
        self.assertEqual(self.editor.current_page, 2)
        assert self.editor.bitmap is not None
        self.assertEqual(self.editor.bitmap.page, 2)

        self.assertFalse(self.editor.go_to_page(5))
        self.assertFalse(self.editor.go_to_page(2))
        self.assertTrue(self.editor.previous_page())
        self.assertFalse(self.editor.previous_page())

    def test_rendering_same_page_twice_is_identical(self) -> None:
        first = self.editor.bitmap
        self.editor.next_page()
        self.editor.previous_page()
        self.assertEqual(self.editor.bitmap, first)

    def test_load_asset_resets_page(self) -> None:
        self.editor.go_to_page(3)
        self.editor.load_asset(TemplateAsset(kind=AssetKind.PDF, data=_pdf_bytes(2)))
        self.assertEqual(self.editor.current_page, 1)
        self.assertEqual(self.editor.total_pages, 2)

    def test_stale_render_is_discarded(self) -> None:
        request = self.editor.begin_render(1)
        self.assertTrue(self.editor.render_in_flight)
        self.assertFalse(self.editor.next_page())

        self.editor.retry()
        stale = Bitmap(png=b"stale", width=1, height=1, page=1)
        self.assertFalse(self.editor.complete_render(request, bitmap=stale))
        self.assertNotEqual(self.editor.bitmap, stale)
        self.assertIs(self.editor.status, EditorStatus.READY)

    def test_page_render_failure_then_retry(self) -> None:
        _FlakyRasterizer.failing_pages = {2}
        self.addCleanup(setattr, _FlakyRasterizer, "failing_pages", set())
        with patch(
            "position_editor.get_rasterizer",
            side_effect=lambda kind, data: _FlakyRasterizer(data),
        ):
            editor, _, _ = _editor(TemplateAsset(kind=AssetKind.PDF, data=b"%PDF"))
            self.assertIs(editor.open(), EditorStatus.READY)

            self.assertTrue(editor.next_page())
            self.assertIs(editor.status, EditorStatus.ERROR)
            self.assertIsInstance(editor.error, PageRenderError)
            assert isinstance(editor.error, PageRenderError)
            self.assertEqual(editor.error.page, 2)
            self.assertFalse(editor.render_in_flight)

            _FlakyRasterizer.failing_pages = set()
            self.assertIs(editor.retry(), EditorStatus.READY)
            self.assertEqual(editor.current_page, 2)
            assert editor.bitmap is not None
            self.assertEqual(editor.bitmap.page, 2)

    def test_render_for_another_page_is_discarded(self) -> None:
        request = self.editor.begin_render(2)
        stale = Bitmap(png=b"stale", width=1, height=1, page=2)
        self.assertFalse(self.editor.complete_render(request, bitmap=stale))
        self.assertFalse(self.editor.render_in_flight)


class EditorToolbarTests(unittest.TestCase):
    def setUp(self) -> None:
        self.editor, _, _ = _editor()
        self.editor.open()

    def test_zoom_is_bounded(self) -> None:
        self.assertEqual(self.editor.zoom_in(), 1.25)
        for _ in range(20):
            self.editor.zoom_in()
        self.assertEqual(self.editor.zoom, MAX_ZOOM)
        for _ in range(20):
            self.editor.zoom_out()
        self.assertEqual(self.editor.zoom, MIN_ZOOM)

    def test_zoom_does_not_change_position(self) -> None:
        self.editor.zoom_in()
        self.assertEqual(self.editor.position, DEFAULT)

    def test_fields_and_reset(self) -> None:
        self.editor.set_x(10)
        self.editor.set_y(20)
        self.editor.set_size(30)
        self.assertEqual(self.editor.position, Position(10, 20, 30, 30))
        self.assertEqual(self.editor.reset_position(), DEFAULT)

    def test_toggles(self) -> None:
        self.assertTrue(self.editor.toggle_grid())
        self.assertFalse(self.editor.toggle_aspect_lock())
        self.editor.set_size(40)
        self.assertEqual(self.editor.position.height, 15)

    def test_snapshot(self) -> None:
        state = self.editor.snapshot()
        self.assertEqual(state["status"], "ready")
        self.assertEqual(state["mode"], "idle")
        self.assertEqual(state["position"], DEFAULT.to_dict())
        self.assertEqual(state["bitmap"], {"width": 400, "height": 400})


class EditorInputTests(unittest.TestCase):
    def test_pointer_drag_through_window(self) -> None:
        editor, _, _ = _editor()
        editor.open()
        # Rect spans 200..260 x 280..340 on a 400px container.
        self.assertTrue(editor.pointer_down(PointerEvent(230, 310)))
        self.assertIs(editor.mode, Mode.DRAGGING)
        editor.window.emit("pointermove", PointerEvent(270, 310))
        editor.window.emit("pointerup", PointerEvent(270, 310))
        self.assertAlmostEqual(editor.position.x, 60)
        self.assertIs(editor.mode, Mode.IDLE)

    def test_input_ignored_until_ready(self) -> None:
        editor, _, _ = _editor()
        self.assertFalse(editor.pointer_down(PointerEvent(230, 310)))

    def test_layout_offsets_hit_testing(self) -> None:
        editor, _, _ = _editor()
        editor.open()
        editor.layout(100, 50, 400, 400)
        self.assertFalse(editor.pointer_down(PointerEvent(230, 310)))
        self.assertTrue(editor.pointer_down(PointerEvent(330, 360)))


class EditorLifecycleTests(unittest.TestCase):
    def test_save_hands_back_position_and_closes(self) -> None:
        editor, on_save, on_cancel = _editor()
        editor.open()
        editor.set_x(12)
        saved = editor.save()
        self.assertEqual(saved, Position(12, 70, 15, 15))
        on_save.assert_called_once_with(saved)
        on_cancel.assert_not_called()
        self.assertTrue(editor.closed)
        self.assertEqual(editor.window.listener_count(), 0)

    def test_corner_drag_then_save(self) -> None:
        editor, on_save, _ = _editor(initial=Position(50, 50, 15, 15))
        editor.open()
        # se handle of a 60px box at (200, 200) on a 400px container.
        self.assertTrue(editor.pointer_down(PointerEvent(260, 260)))
        self.assertIs(editor.mode, Mode.RESIZING)
        editor.window.emit("pointermove", PointerEvent(300, 300))
        editor.window.emit("pointerup", PointerEvent(300, 300))
        editor.save()
        on_save.assert_called_once_with(Position(50, 50, 25, 25))

    def test_save_is_ignored_before_ready(self) -> None:
        editor, on_save, _ = _editor()
        self.assertIsNone(editor.save())
        on_save.assert_not_called()

    def test_cancel_discards_changes(self) -> None:
        editor, on_save, on_cancel = _editor()
        editor.open()
        editor.set_x(12)
        editor.cancel()
        on_cancel.assert_called_once_with()
        on_save.assert_not_called()
        self.assertTrue(editor.closed)

    def test_keyboard_shortcuts(self) -> None:
        editor, on_save, _ = _editor()
        editor.open()
        self.assertTrue(editor.key_down(KeyEvent("ArrowLeft", shift=True)))
        self.assertEqual(editor.position.x, 45)
        editor.key_down(KeyEvent("Enter", ctrl=True))
        on_save.assert_called_once_with(Position(45, 70, 15, 15))
        self.assertFalse(editor.key_down(KeyEvent("ArrowLeft")))

    def test_unhandled_key_is_not_reported_as_consumed(self) -> None:
        editor, _, _ = _editor()
        editor.open()
        self.assertFalse(editor.key_down(KeyEvent("q")))
        self.assertFalse(editor.key_down(KeyEvent("Enter")))
        self.assertEqual(editor.position, DEFAULT)

        editor.pointer_down(PointerEvent(client_x=230, client_y=310))
        self.assertIs(editor.mode, Mode.DRAGGING)
        self.assertFalse(editor.key_down(KeyEvent("ArrowLeft")))
        self.assertEqual(editor.position, DEFAULT)

    def test_escape_cancels(self) -> None:
        editor, _, on_cancel = _editor()
        editor.open()
        editor.key_down(KeyEvent("Escape"))
        on_cancel.assert_called_once_with()
        self.assertTrue(editor.closed)

    def test_close_discards_pending_render(self) -> None:
        editor, _, _ = _editor()
        editor.open()
        request = editor.begin_render(1)
        editor.close()
        bitmap = Bitmap(png=b"late", width=1, height=1)
        self.assertFalse(editor.complete_render(request, bitmap=bitmap))
        self.assertIs(editor.status, EditorStatus.CLOSED)


if __name__ == "__main__":
    unittest.main()
