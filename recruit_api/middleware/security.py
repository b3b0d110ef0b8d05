"""Security middleware: rate limiting, client IP resolution and headers."""

import ipaddress
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from recruit_api.config.settings import settings

logger = structlog.get_logger()

# Trusted proxy networks (configure based on your infrastructure)
TRUSTED_PROXIES = [
    ipaddress.ip_network("127.0.0.1/32"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
]

# Webhooks have their own limiter in the webhook verification path
WEBHOOK_PATH_PREFIX = "/api/webhooks/"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the oldest request leaves the window

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class InMemoryRateLimiter:
    """Sliding-window rate limiter kept in process memory.

    Counters are per-process and lost on restart, which is acceptable for
    best-effort throttling. Use a shared store for strict limits across
    multiple workers.
    """

    # Max age for stale entries (1 hour)
    STALE_ENTRY_AGE = 3600
    # Cleanup interval (every 100 checks)
    CLEANUP_INTERVAL = 100

    def __init__(self):
        self._requests: Dict[str, list] = defaultdict(list)
        self._check_count = 0

    def _cleanup_old_requests(self, key: str, now: float, window_seconds: int) -> None:
        """Remove requests older than the window."""
        cutoff = now - window_seconds
        self._requests[key] = [t for t in self._requests[key] if t > cutoff]

    def _periodic_cleanup(self, now: float) -> None:
        """Periodically drop stale keys to prevent memory growth."""
        self._check_count += 1
        if self._check_count < self.CLEANUP_INTERVAL:
            return

        self._check_count = 0
        cutoff = now - self.STALE_ENTRY_AGE
        stale_keys = [
            key for key, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < cutoff
        ]
        for key in stale_keys:
            del self._requests[key]

    def peek(self, key: str, limit: int, window: int = 60) -> RateLimitResult:
        """Report whether one more request for key fits, without recording it."""
        now = time.time()
        self._periodic_cleanup(now)
        self._cleanup_old_requests(key, now, window)

        timestamps = self._requests[key]
        reset_at = (timestamps[0] if timestamps else now) + window
        remaining = max(limit - len(timestamps), 0)
        return RateLimitResult(
            allowed=remaining > 0,
            limit=limit,
            remaining=remaining,
            reset_at=reset_at,
        )

    def record(self, key: str) -> None:
        """Count one request for key at the current time."""
        self._requests[key].append(time.time())

    def check(self, key: str, limit: int, window: int = 60) -> RateLimitResult:
        """Record a request for key and report whether it is within the limit.

        Args:
            key: Identity key (webhook:ip, user:id or ip:address)
            limit: Max requests allowed in the window
            window: Window in seconds

        Returns:
            RateLimitResult; rejected requests are not recorded
        """
        result = self.peek(key, limit, window)
        if not result.allowed:
            return result

        self.record(key)
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=result.remaining - 1,
            reset_at=self._requests[key][0] + window,
        )

    def reset(self, key: Optional[str] = None) -> None:
        """Forget recorded requests for one key, or for all keys."""
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)


# Global rate limiter instance
rate_limiter = InMemoryRateLimiter()


def is_trusted_proxy(ip: str) -> bool:
    """Check if IP is a trusted proxy."""
    try:
        addr = ipaddress.ip_address(ip)
        return any(addr in net for net in TRUSTED_PROXIES)
    except ValueError:
        return False


def get_client_ip(request: Request) -> str:
    """Safely determine client IP based on trusted proxy configuration.

    When behind a load balancer we read the rightmost untrusted IP in
    X-Forwarded-For. The load balancer appends the real client IP, so we
    walk backwards through the chain until we find an IP not in our
    trusted proxies.
    """
    client_host = request.client.host if request.client else "unknown"

    if is_trusted_proxy(client_host):
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]

            for ip in reversed(ips):
                if ip and not is_trusted_proxy(ip):
                    return ip

            if ips and ips[0]:
                return ips[0]

    return client_host


def get_webhook_client_ip(request: Request) -> Optional[str]:
    """Client IP as reported by the hosting edge for form vendor webhooks.

    Order: first X-Forwarded-For entry, then X-Real-IP, then
    CF-Connecting-IP. Returns None when no header is present.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    return None


def get_identity(request: Request) -> str:
    """Get identity for rate limiting.

    Uses user ID if authenticated, otherwise IP.
    """
    user = getattr(request.state, "user", None)
    if user and user.get("sub"):
        return f"user:{user['sub']}"

    return f"ip:{get_client_ip(request)}"


class SecurityMiddleware(BaseHTTPMiddleware):
    """Security middleware for API rate limiting and response headers."""

    API_RATE_LIMIT = 300
    API_RATE_WINDOW = 60

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(WEBHOOK_PATH_PREFIX):
            identity = get_identity(request)
            result = rate_limiter.check(
                f"{identity}:api",
                limit=self.API_RATE_LIMIT,
                window=self.API_RATE_WINDOW,
            )
            if not result.allowed:
                logger.warning("API rate limit exceeded", identity=identity)
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": {
                            "code": "RATE_LIMITED",
                            "message": "Too many requests",
                            "details": {},
                        }
                    },
                    headers=result.headers(),
                )

        response = await call_next(request)
        self._add_security_headers(response)
        return response

    def _add_security_headers(self, response: Response) -> None:
        """Add security headers to response."""
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
