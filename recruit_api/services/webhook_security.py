"""Verification of inbound Tally webhooks.

Order matters: rate limit, body read, IP allowlist, signature, then JSON
parse and structure check. Every failure raises WebhookError before any
database access.
"""

import hashlib
import hmac
import ipaddress
import json
from dataclasses import dataclass, field
from typing import Optional

import structlog
from fastapi import Request
from fastapi.responses import Response
from pydantic import ValidationError

from recruit_api.config.settings import settings
from recruit_api.integrations.tally import TallyWebhookPayload
from recruit_api.middleware.error_handler import WebhookError
from recruit_api.middleware.logging import sanitize_for_log
from recruit_api.middleware.security import InMemoryRateLimiter, get_webhook_client_ip

logger = structlog.get_logger()

SIGNATURE_HEADER = "tally-signature"

webhook_rate_limiter = InMemoryRateLimiter()

CORS_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, x-webhook-secret, Authorization",
}


@dataclass
class VerifiedWebhook:
    payload: TallyWebhookPayload
    ip: Optional[str]
    rate_limit_headers: dict = field(default_factory=dict)


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of a hex HMAC-SHA256 signature over the raw body."""
    if not signature or not secret:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(signature.strip().lower().encode("utf-8"), expected.encode("utf-8"))


def _ip_matches(ip: str, entry: str) -> bool:
    entry = entry.strip()
    if entry == "0.0.0.0/0":
        return True
    try:
        address = ipaddress.ip_address(ip)
        if "/" in entry:
            return address in ipaddress.ip_network(entry, strict=False)
        return address == ipaddress.ip_address(entry)
    except ValueError:
        return False


def verify_ip(ip: Optional[str]) -> bool:
    """Check the client IP against TALLY_WEBHOOK_IP_WHITELIST."""
    if not ip:
        return False
    if settings.is_development:
        return True
    return any(_ip_matches(ip, entry) for entry in settings.TALLY_WEBHOOK_IP_WHITELIST)


def _check_origin(body: bytes, request: Request, ip: Optional[str]) -> Optional[str]:
    """Returns the failure reason, or None when the request is authentic."""
    if not verify_ip(ip):
        return f"IP not whitelisted: {ip}"

    secret = settings.WEBHOOK_SECRET
    if not secret:
        if settings.is_development:
            return None
        return "WEBHOOK_SECRET not configured"

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        return f"Missing {SIGNATURE_HEADER} header"

    if not verify_signature(body, signature, secret):
        return "Invalid signature"

    return None


async def verify_webhook_request(request: Request) -> VerifiedWebhook:
    """Authenticate and parse a webhook request.

    Raises:
        WebhookError: 429 when rate limited, 401 when the origin cannot be
            verified, 400 for unreadable or malformed payloads
    """
    ip = get_webhook_client_ip(request)

    result = webhook_rate_limiter.check(
        f"webhook:{ip or 'unknown'}",
        settings.WEBHOOK_RATE_LIMIT,
        settings.WEBHOOK_RATE_WINDOW_SECONDS,
    )
    headers = result.headers()
    if not result.allowed:
        logger.warning("Webhook rate limit exceeded", ip=ip, path=request.url.path)
        raise WebhookError("Rate limit exceeded", 429, headers)

    try:
        body = await request.body()
    except Exception as e:
        logger.warning("Failed to read webhook body", error_type=type(e).__name__)
        raise WebhookError("Failed to read request body", 400, headers)

    failure = _check_origin(body, request, ip)
    if failure:
        logger.warning(
            "Webhook verification failed",
            reason=sanitize_for_log(failure),
            path=request.url.path,
        )
        raise WebhookError(failure, 401, headers)

    try:
        raw = json.loads(body)
    except ValueError:
        raise WebhookError("Invalid JSON payload", 400, headers)

    try:
        payload = TallyWebhookPayload.model_validate(raw)
    except ValidationError:
        raise WebhookError("Invalid payload structure", 400, headers)

    if not payload.data.submission_id:
        raise WebhookError("Invalid payload structure", 400, headers)

    return VerifiedWebhook(payload=payload, ip=ip, rate_limit_headers=headers)


def webhook_options_response() -> Response:
    """CORS preflight answer shared by every webhook path."""
    return Response(status_code=204, headers=CORS_PREFLIGHT_HEADERS)
