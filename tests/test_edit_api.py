import json
import os
import re
import sys
import unittest
from unittest import mock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fastapi.testclient import TestClient

os.environ["USE_DB"] = "0"
os.environ["FRONTEDIT_DISABLE_AUTH"] = "1"
os.environ["FRONTEDIT_DEV_ROLES"] = "admin"
os.environ["SUPABASE_URL"] = "http://localhost"

import app.main as main
from editability import GUEST

_CONFIG_RE = re.compile(r'<script type="application/json" id="fe-edit-config">(.*?)</script>', re.DOTALL)


class TestEditApi(unittest.TestCase):
    def setUp(self) -> None:
        main.store = main._build_store()
        self.client = TestClient(main.app)

    def _token(self) -> str:
        res = self.client.get("/edit/token")
        self.assertEqual(res.status_code, 200)
        return res.json()["token"]

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})

    def test_page_renders_editors_and_config(self) -> None:
        res = self.client.get("/pages/")
        self.assertEqual(res.status_code, 200)
        html = res.text
        self.assertIn('class="fe-edit fe-edit-text"', html)
        self.assertIn('class="fe-edit-modal"', html)
        self.assertIn('data-page="10"', html)
        self.assertNotIn("<edit", html)
        match = _CONFIG_RE.search(html)
        self.assertIsNotNone(match)
        config = json.loads(match.group(1))
        self.assertEqual(config["saveUrl"], "/edit/save")
        self.assertEqual(config["pageId"], 1)
        self.assertTrue(config["csrf"]["token"])
        self.assertLess(html.index("fe-edit-config"), html.index("</body>"))

    def test_edit_disabled_by_query(self) -> None:
        html = self.client.get("/pages/", params={"edit": "0"}).text
        self.assertNotIn("fe-edit", html)
        self.assertNotIn("<edit", html)
        self.assertNotIn(' edit="', html)
        self.assertIn("<h1>Welcome</h1>", html)

    def test_guest_sees_plain_page(self) -> None:
        with mock.patch.object(main, "_resolve_actor", return_value=GUEST):
            html = self.client.get("/pages/about").text
            res = self.client.post("/edit/save", json={"fields": {"2__title": "x"}})
        self.assertNotIn("fe-edit-config", html)
        self.assertIn("<h1>About</h1>", html)
        self.assertEqual(res.status_code, 401)

    def test_missing_page(self) -> None:
        self.assertEqual(self.client.get("/pages/missing").status_code, 404)
        self.assertEqual(self.client.get("/pages/10").status_code, 404)

    def test_json_save(self) -> None:
        res = self.client.post(
            "/edit/save",
            json={"id": 1, "fields": {"1__headline": "Hello"}},
            headers={"X-CSRF-Token": self._token()},
        )
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["status"], 1, body)
        self.assertEqual(body["changes"], "1__headline")
        self.assertEqual(body["formatted"], {"1__headline": "Hello"})
        self.assertIn("Hello", self.client.get("/pages/").text)

    def test_token_from_page_config(self) -> None:
        html = self.client.get("/pages/about").text
        token = json.loads(_CONFIG_RE.search(html).group(1))["csrf"]["token"]
        res = self.client.post("/edit/save", json={"id": 2, "fields": {"2__title": "About us"}, "csrf": token})
        self.assertEqual(res.json()["status"], 1)

    def test_form_save(self) -> None:
        res = self.client.post(
            "/edit/save",
            data={"id": "2", "csrf": self._token(), "fields[2__title]": "Team"},
        )
        self.assertEqual(res.json()["status"], 1)
        self.assertEqual(main.store.get(2).get("title"), "Team")

    def test_missing_csrf_token(self) -> None:
        res = self.client.post("/edit/save", json={"fields": {"2__title": "X"}})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"status": 0, "error": "Failed CSRF check", "changes": "", "formatted": {}, "unformatted": {}})
        self.assertEqual(main.store.get(2).get("title"), "About")

    def test_partial_save(self) -> None:
        res = self.client.post(
            "/edit/save",
            json={"fields": {"2__title": "New", "2__missing": "x"}},
            headers={"X-CSRF-Token": self._token()},
        )
        body = res.json()
        self.assertEqual(body["status"], 2)
        self.assertEqual(body["error"], "missing: Field not found")

    def test_no_changes(self) -> None:
        res = self.client.post(
            "/edit/save",
            json={"fields": {"2__title": "About"}},
            headers={"X-CSRF-Token": self._token()},
        )
        self.assertEqual(res.json()["status"], 3)

    def test_modal_form(self) -> None:
        res = self.client.get("/edit/modal", params={"id": "1", "fields": "summary,contact_email", "modal": "1"})
        self.assertEqual(res.status_code, 200)
        self.assertIn('name="fields[1__summary]"', res.text)
        self.assertIn('name="fields[1__contact_email]"', res.text)
        self.assertIn('value="hello@example.com"', res.text)

    def test_modal_submit(self) -> None:
        form = self.client.get("/edit/modal", params={"id": "2", "fields": "updated_on"}).text
        token = re.search(r'name="csrf" value="([^"]+)"', form).group(1)
        res = self.client.post(
            "/edit/modal?id=2&fields=updated_on",
            data={"id": "2", "csrf": token, "fields[2__updated_on]": "2025-05-01"},
        )
        self.assertEqual(res.status_code, 200)
        self.assertIn("Saved", res.text)
        self.assertEqual(main.store.get(2).get("updated_on"), "2025-05-01")

    def test_modal_unknown_record(self) -> None:
        self.assertEqual(self.client.get("/edit/modal", params={"id": "999", "fields": "title"}).status_code, 404)
        self.assertEqual(self.client.get("/edit/modal", params={"id": "1", "fields": "nope"}).status_code, 403)


if __name__ == "__main__":
    unittest.main()
