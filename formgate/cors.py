from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from .config import Settings

logger = logging.getLogger(__name__)

# Protocol + dotted domain with a 2+ letter TLD. Anything else is ignored.
_OVERRIDE_RE = re.compile(r"^https?://[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Content-Type, X-Requested-With"
MAX_AGE_S = "3600"


def is_valid_origin_override(url: str | None) -> bool:
    return bool(url) and _OVERRIDE_RE.match(str(url)) is not None


def build_allow_list(
    *,
    is_production: bool,
    override: str | None,
    production_origins: Iterable[str],
    development_origins: Iterable[str],
) -> frozenset[str]:
    """Compute the exact-match origin allow-list for one deployment environment."""
    base = production_origins if is_production else development_origins
    origins = {o for o in base if o}
    if override:
        if is_valid_origin_override(override):
            origins.add(override)
        else:
            logger.debug("Ignoring malformed FRONTEND_URL override")
    return frozenset(origins)


@dataclass(frozen=True)
class OriginPolicy:
    is_production: bool
    allowed_origins: frozenset[str]

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls(
            is_production=settings.is_production,
            allowed_origins=build_allow_list(
                is_production=settings.is_production,
                override=settings.frontend_url,
                production_origins=settings.production_origins,
                development_origins=settings.development_origins,
            ),
        )


@dataclass(frozen=True)
class CorsDecision:
    headers: dict[str, str] = field(default_factory=dict)
    allowed: bool = False
    preflight: bool = False


class OriginGuard:
    """Decides CORS grants for inbound requests.

    Listed origins are echoed back exactly with credentials. In production an
    unlisted origin gets an explicit `null` grant, and a request with no
    Origin gets no grant at all; the wildcard is only ever used in development.
    """

    def __init__(self, policy: OriginPolicy) -> None:
        self.policy = policy

    def decide(self, origin: str | None, method: str) -> CorsDecision:
        headers: dict[str, str] = {}
        allowed = False

        if origin and origin in self.policy.allowed_origins:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Credentials"] = "true"
            allowed = True
        elif self.policy.is_production:
            if origin:
                headers["Access-Control-Allow-Origin"] = "null"
                headers["Access-Control-Allow-Credentials"] = "false"
        elif origin:
            # Development only: unlisted local tooling still works.
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Credentials"] = "true"
            allowed = True
        else:
            headers["Access-Control-Allow-Origin"] = "*"
            headers["Access-Control-Allow-Credentials"] = "false"
            allowed = True

        headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
        headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
        headers["Access-Control-Max-Age"] = MAX_AGE_S
        headers["Vary"] = "Origin"

        return CorsDecision(
            headers=headers,
            allowed=allowed,
            preflight=(method or "").upper() == "OPTIONS",
        )
