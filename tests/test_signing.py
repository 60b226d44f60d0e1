"""Tests for webhook payload signatures."""

import hashlib
import hmac

from hookline.webhooks import compute_signature, verify_signature


class TestComputeSignature:
    """Tests for compute_signature."""

    def test_format_and_value(self):
        """Signature should be sha256= followed by the hex HMAC of the body."""
        body = b'{"event_id":"evt_1"}'
        expected = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

        assert compute_signature(body, "secret") == f"sha256={expected}"

    def test_deterministic(self):
        """Same body and secret should always give the same signature."""
        assert compute_signature(b"body", "k") == compute_signature(b"body", "k")

    def test_distinct_per_payload(self):
        """Different bodies should give different signatures."""
        assert compute_signature(b"a", "k") != compute_signature(b"b", "k")

    def test_distinct_per_secret(self):
        """Different secrets should give different signatures."""
        assert compute_signature(b"a", "k1") != compute_signature(b"a", "k2")

    def test_str_payload_is_utf8(self):
        """A str body should be signed as its UTF-8 bytes."""
        assert compute_signature("café", "k") == compute_signature("café".encode(), "k")


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_valid(self):
        signature = compute_signature(b"payload", "secret")
        assert verify_signature(b"payload", "secret", signature)

    def test_tampered_body(self):
        """A modified body should not verify."""
        signature = compute_signature(b"payload", "secret")
        assert not verify_signature(b"payload!", "secret", signature)

    def test_wrong_secret(self):
        signature = compute_signature(b"payload", "secret")
        assert not verify_signature(b"payload", "other", signature)

    def test_missing_prefix(self):
        """A bare hex digest should not verify."""
        signature = compute_signature(b"payload", "secret").removeprefix("sha256=")
        assert not verify_signature(b"payload", "secret", signature)
