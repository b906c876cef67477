import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from record_store import MemoryRecordStore
from widgets import get_input_control


class TestWidgets(unittest.TestCase):
    def setUp(self) -> None:
        store = MemoryRecordStore()
        store.add_field("name", "text", config={"required": True, "maxlength": 10})
        store.add_field("notes", "textarea")
        store.add_field("body", "textarea", config={"content_type": "html"})
        store.add_field("qty", "integer", config={"min": 1, "max": 5})
        store.add_field("price", "float", config={"precision": 2})
        store.add_field("active", "checkbox")
        store.add_field("color", "options", config={"options": ["red", {"value": "blue", "label": "Blue"}]})
        store.add_field("labels", "tags")
        store.add_field("site", "url")
        store.add_field("published", "datetime")
        store.add_field("photo", "image")
        store.add_template(
            "item",
            ["name", "notes", "body", "qty", "price", "active", "color", "labels", "site", "published", "photo"],
        )
        self.record = store.create("item", data={"name": "Old", "qty": 2})

    def _widget(self, name: str):
        return get_input_control(self.record, self.record.field(name))

    def test_single_line_text(self) -> None:
        widget = self._widget("name")
        self.assertEqual(widget.process_input(" New\nName "), [])
        self.assertEqual(widget.get_value(), "New Name")
        self.assertTrue(widget.is_changed())

    def test_text_limits(self) -> None:
        self.assertEqual(self._widget("name").process_input(""), ["Missing required value"])
        self.assertEqual(self._widget("name").process_input("x" * 11), ["Value exceeds max length of 10"])

    def test_unchanged_value(self) -> None:
        widget = self._widget("name")
        self.assertEqual(widget.process_input("Old"), [])
        self.assertFalse(widget.is_changed())

    def test_textarea_keeps_lines(self) -> None:
        widget = self._widget("notes")
        widget.process_input("a\r\nb")
        self.assertEqual(widget.get_value(), "a\nb")

    def test_rich_text_is_sanitized(self) -> None:
        widget = self._widget("body")
        self.assertEqual(widget.name, "rich")
        widget.process_input('<p onclick="x()">Hi</p><script>alert(1)</script><a href="javascript:go()">l</a>')
        self.assertEqual(widget.get_value(), "<p>Hi</p><a>l</a>")

    def test_rich_text_parser_level_cleanup(self) -> None:
        cases = {
            "<svg/onload=alert(1)><a href=javascript:alert(2)>x</a><script>bad()": "",
            "<a href=javascript:alert(2)>x</a>": "<a>x</a>",
            "<a href=\" jAvA\tscript:alert(1)\">x</a>": "<a>x</a>",
            "<a href=\"&#106;avascript:alert(1)\" title=t>x</a>": '<a title="t">x</a>',
            "<img src=x onerror=alert(1)>": '<img src="x"/>',
            "<p style=\"x\">a<!-- c --><font color=red>b</font></p>": "<p>ab</p>",
            "<iframe src=\"/x\"></iframe><b>ok</b>": "<b>ok</b>",
            '<a href="https://example.com/a">l</a>': '<a href="https://example.com/a">l</a>',
        }
        for raw, expected in cases.items():
            widget = self._widget("body")
            self.assertEqual(widget.process_input(raw), [], raw)
            self.assertEqual(widget.get_value(), expected, raw)

    def test_integer_range(self) -> None:
        widget = self._widget("qty")
        self.assertEqual(widget.process_input("9"), ["Value must be at most 5"])
        self.assertEqual(widget.process_input("abc"), ["Value must be a whole number"])
        self.assertEqual(widget.process_input("3"), [])
        self.assertEqual(widget.get_value(), 3)
        self.assertEqual(widget.render_data(), {"data-min": "1", "data-max": "5"})

    def test_float_precision(self) -> None:
        widget = self._widget("price")
        widget.process_input("1.236")
        self.assertEqual(widget.get_value(), 1.24)

    def test_float_rejects_non_finite(self) -> None:
        for raw in ("nan", "inf", "-Infinity"):
            widget = self._widget("price")
            self.assertEqual(widget.process_input(raw), ["Value must be a finite number"], raw)
            self.assertFalse(widget.is_changed())

    def test_checkbox(self) -> None:
        widget = self._widget("active")
        widget.process_input("on")
        self.assertEqual(widget.get_value(), 1)
        self.assertTrue(widget.is_changed())

    def test_select(self) -> None:
        widget = self._widget("color")
        self.assertEqual(widget.process_input("red,blue"), [])
        self.assertEqual(widget.get_value(), ["red", "blue"])
        self.assertEqual(widget.process_input("green"), ["Value must be one of ['red', 'blue']"])

    def test_tags(self) -> None:
        widget = self._widget("labels")
        widget.process_input("a, b,a")
        self.assertEqual(widget.get_value(), ["a", "b"])

    def test_url_and_datetime(self) -> None:
        self.assertEqual(self._widget("site").process_input("ftp://x"), ["Value must be an http(s) or site-relative URL"])
        self.assertEqual(self._widget("site").process_input("/about/"), [])
        self.assertEqual(self._widget("published").process_input("2024-13-01"), ["Value must be YYYY-MM-DD or ISO8601"])
        self.assertEqual(self._widget("published").process_input("2024-02-01T10:00:00Z"), [])

    def test_external_widget_refuses_input(self) -> None:
        self.assertEqual(self._widget("photo").process_input("x"), ["This field can only be edited in the full editor"])


if __name__ == "__main__":
    unittest.main()
