import os
import sys
import unittest
from unittest import mock


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.site import DEFAULT_SITE, load_site
from editability import Actor
from frontedit.errors import SecurityError
from record_store import MemoryRecordStore, RecordSaveError
from save_pipeline import (
    CSRF_FAILED_MESSAGE,
    STATUS_ERROR,
    STATUS_NO_CHANGES,
    STATUS_PARTIAL,
    STATUS_SUCCESS,
    SavePipeline,
    parse_batch,
)


class TestParseBatch(unittest.TestCase):
    def test_invalid_keys_are_dropped(self) -> None:
        entries = parse_batch({"2__title": "a", "abc": "x", "x__title": "y", "2__bad-name": "z", "3__": "w"})
        self.assertEqual([(e.record_id, e.field_name) for e in entries], [(2, "title")])

    def test_field_name_may_contain_separator(self) -> None:
        entries = parse_batch({"4__meta__title": "a"})
        self.assertEqual(entries[0].record_id, 4)
        self.assertEqual(entries[0].field_name, "meta__title")


class TestSavePipeline(unittest.TestCase):
    def setUp(self) -> None:
        self.store = load_site(MemoryRecordStore(), DEFAULT_SITE)
        self.admin = Actor(id="a1", roles=["admin"])

    def _run(self, fields: dict, actor: Actor | None = None, page_id: int | None = None, **kwargs):
        page = self.store.get(page_id) if page_id is not None else None
        return SavePipeline(self.store, actor or self.admin, page=page, **kwargs).run(fields)

    def test_single_field_success(self) -> None:
        outcome = self._run({"2__title": "Hello"}, page_id=2)
        self.assertEqual(outcome.status, STATUS_SUCCESS)
        self.assertEqual(outcome.to_dict()["changes"], "2__title")
        self.assertEqual(outcome.formatted, {"2__title": "Hello"})
        self.assertEqual(outcome.unformatted, {"2__title": "Hello"})
        self.assertEqual(self.store.get(2).get("title"), "Hello")

    def test_mixed_batch_is_partial(self) -> None:
        outcome = self._run({"2__title": "New", "2__nope": "x"})
        self.assertEqual(outcome.status, STATUS_PARTIAL)
        self.assertEqual(outcome.error, "nope: Field not found")
        self.assertEqual(self.store.get(2).get("title"), "New")

    def test_unchanged_value_reports_no_changes(self) -> None:
        outcome = self._run({"2__title": "About"})
        self.assertEqual(outcome.status, STATUS_NO_CHANGES)
        self.assertEqual(outcome.to_dict(), {"status": 3, "error": "", "changes": "", "formatted": {"2__title": "About"}, "unformatted": {"2__title": "About"}})

    def test_empty_batch(self) -> None:
        outcome = self._run({"abc": "x"})
        self.assertEqual(outcome.status, STATUS_NO_CHANGES)
        self.assertEqual(outcome.error, "")

    def test_csrf_failure_stops_everything(self) -> None:
        def _fail() -> None:
            raise SecurityError("Invalid CSRF token")

        outcome = SavePipeline(self.store, self.admin).run({"2__title": "Hacked"}, csrf_check=_fail)
        self.assertEqual(outcome.to_dict()["status"], STATUS_ERROR)
        self.assertEqual(outcome.error, CSRF_FAILED_MESSAGE)
        self.assertEqual(self.store.get(2).get("title"), "About")

    def test_permission_denied(self) -> None:
        author = Actor(id="w1", roles=["author"])
        outcome = self._run({"1__headline": "x"}, actor=author)
        self.assertEqual(outcome.status, STATUS_NO_CHANGES)
        self.assertEqual(outcome.error, "headline: Not editable")

    def test_widget_error(self) -> None:
        outcome = self._run({"1__contact_email": "not-an-email"})
        self.assertEqual(outcome.status, STATUS_NO_CHANGES)
        self.assertEqual(outcome.error, "contact_email: Value must be an email address")

    def test_errors_are_newline_joined(self) -> None:
        outcome = self._run({"2__a": "x", "2__b": "y"})
        self.assertEqual(outcome.error, "a: Field not found\nb: Field not found")
        self.assertEqual(outcome.status, STATUS_NO_CHANGES)

    def test_unchanged_value_with_field_error_reports_no_changes(self) -> None:
        outcome = self._run({"2__title": "About", "2__nope": "x"})
        self.assertEqual(outcome.to_dict()["status"], STATUS_NO_CHANGES)
        self.assertEqual(outcome.error, "nope: Field not found")
        self.assertEqual(outcome.changes, [])

    def test_contenteditable_breaks_become_newlines(self) -> None:
        outcome = self._run({"1__summary": "Line one<br>Line two &amp; more"}, page_id=1)
        self.assertEqual(outcome.status, STATUS_SUCCESS)
        self.assertEqual(self.store.get(1).get("summary"), "Line one\nLine two & more")
        self.assertEqual(outcome.formatted["1__summary"], "Line one<br>Line two &amp; more")

    def test_rich_field_keeps_markup(self) -> None:
        outcome = self._run({"1__body": '<p onclick="x()">Hi</p><script>bad()</script>'})
        self.assertEqual(outcome.status, STATUS_SUCCESS)
        self.assertEqual(outcome.formatted["1__body"], "<p>Hi</p>")

    def test_rich_field_drops_script_vectors(self) -> None:
        outcome = self._run({"1__body": '<p>ok</p><img src=x onerror=alert(1)><a href=javascript:alert(2)>x</a><script>bad()</script>'})
        self.assertEqual(outcome.status, STATUS_SUCCESS)
        self.assertEqual(self.store.get(1).get("body"), '<p>ok</p><img src="x"/><a>x</a>')

    def test_derived_record_with_session_page(self) -> None:
        outcome = self._run({"10__title": "Changed"}, page_id=1)
        self.assertEqual(outcome.status, STATUS_SUCCESS)
        self.assertEqual(self.store.get(10).get("title"), "Changed")

    def test_non_inline_field_only_saves_from_full_form(self) -> None:
        outcome = self._run({"1__features": "x"})
        self.assertEqual(outcome.error, "features: Not editable")
        outcome = self._run({"1__features": "x"}, inline_only=False)
        self.assertEqual(outcome.error, "features: This field can only be edited in the full editor")

    def test_store_failure(self) -> None:
        with mock.patch.object(self.store, "save", side_effect=RecordSaveError(message="boom", record_id=2)):
            outcome = self._run({"2__title": "X"})
        self.assertEqual(outcome.status, STATUS_ERROR)
        self.assertEqual(outcome.error, "Error saving record 2: boom")
        self.assertEqual(outcome.changes, [])

    def test_one_record_fails_other_saved(self) -> None:
        original = self.store.save

        def _save(record) -> None:
            if record.id == 1:
                raise RecordSaveError(message="boom", record_id=1)
            original(record)

        with mock.patch.object(self.store, "save", side_effect=_save):
            outcome = self._run({"2__title": "A", "1__headline": "B"})
        self.assertEqual(outcome.status, STATUS_PARTIAL)
        self.assertEqual(outcome.changes, ["2__title"])
        self.assertEqual(self.store.get(2).get("title"), "A")
        self.assertEqual(self.store.get(1).get("headline"), "Edit this page where you read it")
        self.assertEqual(outcome.formatted["1__headline"], "Edit this page where you read it")

    def test_multilang_value(self) -> None:
        store = MemoryRecordStore(languages=[1, 2])
        store.add_field("tagline", "text_lang")
        store.add_template("page", ["tagline"])
        record = store.create("page", path="/", data={"tagline": {"1": "Hello", "2": "Hallo"}})
        key = f"{record.id}__tagline"
        outcome = SavePipeline(store, self.admin, language_id=2).run({key: "Servus"})
        self.assertEqual(outcome.status, STATUS_SUCCESS)
        saved = store.get(record.id).get("tagline")
        self.assertEqual(saved.get(2), "Servus")
        self.assertEqual(saved.get(1), "Hello")
        self.assertEqual(outcome.unformatted[key], "Servus")


if __name__ == "__main__":
    unittest.main()
