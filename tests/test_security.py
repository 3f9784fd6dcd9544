"""Tests for credential helpers and constraint-violation classification."""

import unittest

from sqlalchemy.exc import IntegrityError

from socialfeed.security import generate_token, hash_password, hash_token, verify_password
from socialfeed.store.base import classify_integrity_error


class TestPasswords(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret", rounds=4)
        self.assertTrue(hashed.startswith("$2"))
        self.assertTrue(verify_password("s3cret", hashed))
        self.assertFalse(verify_password("wrong", hashed))

    def test_verify_rejects_empty_and_garbage(self) -> None:
        self.assertFalse(verify_password("", "whatever"))
        self.assertFalse(verify_password("pw", ""))
        self.assertFalse(verify_password("pw", "not-a-bcrypt-hash"))

    def test_long_passwords_are_truncated_not_rejected(self) -> None:
        long_pw = "x" * 100
        hashed = hash_password(long_pw, rounds=4)
        self.assertTrue(verify_password(long_pw, hashed))


class TestTokens(unittest.TestCase):
    def test_tokens_are_unique_and_digest_is_stable(self) -> None:
        a, b = generate_token(), generate_token()
        self.assertNotEqual(a, b)
        self.assertEqual(hash_token(a), hash_token(a))
        self.assertEqual(len(hash_token(a)), 64)
        self.assertNotEqual(hash_token(a), a)


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, Exception(message))


class TestClassifyIntegrityError(unittest.TestCase):
    def test_mysql_duplicate_key(self) -> None:
        v = classify_integrity_error(
            _integrity("(1062, \"Duplicate entry 'a@b.c' for key 'users.uq_users_email'\")")
        )
        self.assertEqual(v.kind, "unique")
        self.assertTrue(v.involves("email"))

    def test_sqlite_unique(self) -> None:
        v = classify_integrity_error(_integrity("UNIQUE constraint failed: users.username"))
        self.assertEqual(v.kind, "unique")
        self.assertTrue(v.involves("username"))
        self.assertFalse(v.involves("email"))

    def test_check_constraint(self) -> None:
        v = classify_integrity_error(
            _integrity("(3819, \"Check constraint 'ck_followers_no_self_follow' is violated.\")")
        )
        self.assertEqual(v.kind, "check")
        self.assertEqual(v.detail, "ck_followers_no_self_follow")

    def test_foreign_key(self) -> None:
        self.assertEqual(
            classify_integrity_error(_integrity("FOREIGN KEY constraint failed")).kind,
            "foreign_key",
        )
        mysql = classify_integrity_error(
            _integrity("(1452, 'Cannot add or update a child row: a foreign key constraint fails')")
        )
        self.assertEqual(mysql.kind, "foreign_key")
