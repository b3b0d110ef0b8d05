"""Tests for webhook signature, IP allowlist and client IP resolution."""

from starlette.requests import Request

from recruit_api.config.settings import settings
from recruit_api.middleware.security import get_webhook_client_ip
from recruit_api.services.webhook_security import compute_signature, verify_ip, verify_signature


def _request(headers: dict) -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/api/webhooks/tally/application",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    })


class TestSignature:
    """HMAC-SHA256 over the raw body, hex encoded."""

    def test_valid_signature(self):
        body = b'{"data": {}}'
        assert verify_signature(body, compute_signature(body, "s3cret"), "s3cret")

    def test_signature_is_case_insensitive_hex(self):
        body = b"payload"
        assert verify_signature(body, compute_signature(body, "s3cret").upper(), "s3cret")

    def test_body_change_invalidates(self):
        signature = compute_signature(b"payload", "s3cret")
        assert not verify_signature(b"payload ", signature, "s3cret")

    def test_wrong_secret(self):
        assert not verify_signature(b"payload", compute_signature(b"payload", "other"), "s3cret")

    def test_missing_signature_or_secret(self):
        assert not verify_signature(b"payload", None, "s3cret")
        assert not verify_signature(b"payload", "abc", "")


class TestIPAllowlist:
    def test_missing_ip_fails(self):
        assert not verify_ip(None)

    def test_open_allowlist(self, monkeypatch):
        monkeypatch.setattr(settings, "TALLY_WEBHOOK_IP_WHITELIST", ["0.0.0.0/0"])
        assert verify_ip("198.51.100.4")

    def test_cidr_and_exact_entries(self, monkeypatch):
        monkeypatch.setattr(settings, "TALLY_WEBHOOK_IP_WHITELIST", ["10.1.0.0/16", "203.0.113.10"])
        assert verify_ip("10.1.44.2")
        assert verify_ip("203.0.113.10")
        assert not verify_ip("203.0.113.11")

    def test_malformed_ip_fails(self, monkeypatch):
        monkeypatch.setattr(settings, "TALLY_WEBHOOK_IP_WHITELIST", ["10.0.0.0/8"])
        assert not verify_ip("not-an-ip")

    def test_development_allows_any_ip(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "development")
        monkeypatch.setattr(settings, "TALLY_WEBHOOK_IP_WHITELIST", [])
        assert verify_ip("198.51.100.4")


class TestClientIP:
    def test_first_forwarded_entry(self):
        request = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert get_webhook_client_ip(request) == "203.0.113.5"

    def test_real_ip_then_cloudflare(self):
        assert get_webhook_client_ip(_request({"X-Real-IP": "198.51.100.7"})) == "198.51.100.7"
        assert get_webhook_client_ip(_request({"CF-Connecting-IP": "198.51.100.8"})) == "198.51.100.8"

    def test_no_headers(self):
        assert get_webhook_client_ip(_request({})) is None
