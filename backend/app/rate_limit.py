"""Rate limiting for the Homico backend.

Requests carrying a valid access token are limited per user, so every
device a professional uses shares one proposal budget. Anonymous requests
and requests with a bad token are limited per client IP. X-Forwarded-For
is read only when the direct peer is in ``Settings.trusted_proxy_cidrs``.
"""

import ipaddress
from functools import lru_cache

from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from .auth import AUTH_COOKIE_NAME
from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("app.rate_limit")

# Used when TRUSTED_PROXY_CIDRS is empty
DEFAULT_TRUSTED_CIDRS = (
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
)

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache
def parse_trusted_networks(raw: str) -> tuple[Network, ...]:
    """Parse comma-separated proxy CIDRs, skipping malformed entries."""
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] or list(DEFAULT_TRUSTED_CIDRS)
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring malformed trusted proxy CIDR | cidr={cidr}")
    return tuple(networks)


def is_trusted_proxy(ip_str: str, networks: tuple[Network, ...]) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in networks)


def client_ip(request, networks: tuple[Network, ...]) -> str:
    """Leftmost X-Forwarded-For entry behind a trusted proxy, else the peer address."""
    direct_ip = get_remote_address(request)
    if is_trusted_proxy(direct_ip, networks):
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return direct_ip


def token_subject(request, settings: Settings) -> str | None:
    """User ID from the bearer token or auth cookie, or None if there is no valid token."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        token = request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    return payload.get("sub") or None


def rate_limit_key(request) -> str:
    settings = get_settings()
    user_id = token_subject(request, settings)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{client_ip(request, parse_trusted_networks(settings.trusted_proxy_cidrs))}"


limiter = Limiter(key_func=rate_limit_key)
