import os
import sys
import unittest

from cryptography.fernet import Fernet


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.csrf import CsrfGuard
from frontedit.errors import SecurityError


class TestCsrfGuard(unittest.TestCase):
    def setUp(self) -> None:
        self.guard = CsrfGuard(Fernet.generate_key().decode("utf-8"))

    def test_round_trip(self) -> None:
        token = self.guard.issue("user-1")
        self.guard.validate("user-1", token)

    def test_tokens_are_unique(self) -> None:
        self.assertNotEqual(self.guard.issue("user-1"), self.guard.issue("user-1"))

    def test_other_session_rejected(self) -> None:
        token = self.guard.issue("user-1")
        with self.assertRaises(SecurityError):
            self.guard.validate("user-2", token)

    def test_missing_and_garbage_rejected(self) -> None:
        with self.assertRaises(SecurityError):
            self.guard.validate("user-1", None)
        with self.assertRaises(SecurityError):
            self.guard.validate("user-1", "not-a-token")

    def test_token_from_other_key_rejected(self) -> None:
        other = CsrfGuard(Fernet.generate_key().decode("utf-8"))
        with self.assertRaises(SecurityError):
            self.guard.validate("user-1", other.issue("user-1"))

    def test_raw_secret_accepted(self) -> None:
        guard = CsrfGuard("x" * 32)
        guard.validate("s", guard.issue("s"))

    def test_invalid_secret(self) -> None:
        with self.assertRaises(SecurityError):
            CsrfGuard("short")


if __name__ == "__main__":
    unittest.main()
