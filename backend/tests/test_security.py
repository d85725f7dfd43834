import unittest
from datetime import timedelta

from backend.security import (
    TokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


class PasswordHashingTests(unittest.TestCase):
    def test_hash_verifies_only_matching_password(self) -> None:
        hashed = hash_password("secret1")

        self.assertNotEqual(hashed, "secret1")
        self.assertTrue(verify_password("secret1", hashed))
        self.assertFalse(verify_password("secret2", hashed))

    def test_hash_is_salted(self) -> None:
        self.assertNotEqual(hash_password("secret1"), hash_password("secret1"))

    def test_malformed_hash_does_not_verify(self) -> None:
        self.assertFalse(verify_password("secret1", "not-a-bcrypt-hash"))


class AccessTokenTests(unittest.TestCase):
    def test_token_round_trips_user_id(self) -> None:
        token = create_access_token(42, "s3cret", timedelta(days=7))

        self.assertEqual(decode_access_token(token, "s3cret"), 42)

    def test_wrong_secret_is_rejected(self) -> None:
        token = create_access_token(42, "s3cret", timedelta(days=7))

        with self.assertRaises(TokenError):
            decode_access_token(token, "other-secret")

    def test_expired_token_is_rejected(self) -> None:
        token = create_access_token(42, "s3cret", timedelta(seconds=-10))

        with self.assertRaises(TokenError):
            decode_access_token(token, "s3cret")

    def test_garbage_token_is_rejected(self) -> None:
        with self.assertRaises(TokenError):
            decode_access_token("not.a.token", "s3cret")


if __name__ == "__main__":
    unittest.main()
