import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from field_support import DEFAULT_INLINE_TYPES, parse_inline_types, resolve_capabilities, supports_inline
from field_types import LanguageValue, get_field_type, type_lineage


class TestSupportsInline(unittest.TestCase):
    def test_listed_types(self) -> None:
        for name in ("text", "page_title", "textarea", "integer", "float", "text_lang"):
            self.assertTrue(supports_inline(get_field_type(name)), name)

    def test_derived_scalar_type_qualifies(self) -> None:
        self.assertTrue(supports_inline(get_field_type("email")))
        self.assertTrue(supports_inline(get_field_type("url")))

    def test_derived_list_type_does_not_qualify(self) -> None:
        self.assertFalse(supports_inline(get_field_type("tags")))

    def test_unrelated_types(self) -> None:
        for name in ("checkbox", "options", "image", "repeater", "datetime"):
            self.assertFalse(supports_inline(get_field_type(name)), name)

    def test_custom_allow_list(self) -> None:
        self.assertFalse(supports_inline(get_field_type("textarea"), ("text",)))
        self.assertTrue(supports_inline(get_field_type("checkbox"), ("checkbox",)))

    def test_parse_inline_types(self) -> None:
        self.assertEqual(parse_inline_types(""), DEFAULT_INLINE_TYPES)
        self.assertEqual(parse_inline_types(None), DEFAULT_INLINE_TYPES)
        self.assertEqual(parse_inline_types("text, email"), ("text", "email"))


class TestCapabilities(unittest.TestCase):
    def test_rich_block(self) -> None:
        caps = resolve_capabilities(get_field_type("textarea"), {"content_type": "html"})
        self.assertEqual(caps, frozenset({"inline", "block", "rich"}))

    def test_multilang(self) -> None:
        caps = resolve_capabilities(get_field_type("text_lang"))
        self.assertEqual(caps, frozenset({"inline", "multilang"}))

    def test_lineage(self) -> None:
        self.assertEqual(type_lineage(get_field_type("textarea_lang")), ["textarea_lang", "textarea"])
        self.assertEqual(type_lineage(get_field_type("page_title")), ["page_title", "text"])


class TestLanguageValue(unittest.TestCase):
    def test_falls_back_to_default_language(self) -> None:
        value = LanguageValue({"1": "Hello", "2": ""}, default_language=1)
        self.assertEqual(value.get(2), "Hello")
        value.set(2, "Hallo")
        self.assertEqual(value.get(2), "Hallo")
        self.assertEqual(value.get(None), "Hello")

    def test_set_without_language_uses_default(self) -> None:
        value = LanguageValue(default_language=1)
        value.set(None, "Hi")
        self.assertEqual(value.to_dict(), {"1": "Hi"})


if __name__ == "__main__":
    unittest.main()
