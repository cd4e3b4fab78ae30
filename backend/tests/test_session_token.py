from __future__ import annotations

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from backend.app.utils.password import hash_password, verify_password
from backend.app.utils.session_token import SessionClaims, issue_session_token, verify_session_token

SECRET = "test-secret"
NOW = 1_700_000_000
SID = "sid-abc"


class SessionTokenTests(unittest.TestCase):
    def test_round_trip(self):
        token = issue_session_token(42, session_id=SID, secret=SECRET, days=7, now=NOW)
        claims, reason = verify_session_token(token, secret=SECRET, now=NOW + 60)
        self.assertEqual(reason, "ok")
        self.assertEqual(claims, SessionClaims(user_id=42, session_id=SID, expires_at=NOW + 7 * 24 * 3600))

    def test_expired(self):
        token = issue_session_token(42, session_id=SID, secret=SECRET, days=1, now=NOW)
        claims, reason = verify_session_token(token, secret=SECRET, now=NOW + 2 * 24 * 3600)
        self.assertIsNone(claims)
        self.assertEqual(reason, "expired")

    def test_wrong_secret(self):
        token = issue_session_token(42, session_id=SID, secret=SECRET, days=7, now=NOW)
        self.assertEqual(verify_session_token(token, secret="other", now=NOW), (None, "bad_sig"))

    def test_tampered_payload(self):
        token = issue_session_token(42, session_id=SID, secret=SECRET, days=7, now=NOW)
        forged_payload = issue_session_token(1, session_id=SID, secret="attacker", days=7, now=NOW).split(".")[0]
        forged = f"{forged_payload}.{token.split('.')[1]}"
        self.assertEqual(verify_session_token(forged, secret=SECRET, now=NOW), (None, "bad_sig"))

    def test_blank_session_id_rejected(self):
        token = issue_session_token(42, session_id="", secret=SECRET, days=7, now=NOW)
        self.assertEqual(verify_session_token(token, secret=SECRET, now=NOW), (None, "bad_sid"))

    def test_garbage(self):
        self.assertEqual(verify_session_token(None, secret=SECRET), (None, "missing"))
        self.assertEqual(verify_session_token("abc", secret=SECRET), (None, "format"))


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self):
        stored = hash_password("hunter22", iterations=1000)
        self.assertTrue(stored.startswith("pbkdf2_sha256$1000$"))
        self.assertTrue(verify_password("hunter22", stored))
        self.assertFalse(verify_password("hunter23", stored))

    def test_salted(self):
        self.assertNotEqual(hash_password("same", iterations=1000), hash_password("same", iterations=1000))

    def test_malformed_stored_value(self):
        self.assertFalse(verify_password("x", "not-a-hash"))
        self.assertFalse(verify_password("x", None))
        self.assertFalse(verify_password("x", "md5$1$a$b"))


if __name__ == "__main__":
    unittest.main()
