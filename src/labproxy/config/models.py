"""Configuration models for the lab proxy."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


# Demo lab sites the platform embeds
DEFAULT_ALLOWLIST: Tuple[str, ...] = (
    "testphp.vulnweb.com",
    "juice-shop.herokuapp.com",
    "juice-shop.github.io",
    "badssl.com",
)


@dataclass(frozen=True)
class PolicyConfig:
    """Configuration for outbound fetch policies."""

    timeout: int = 30000  # Timeout in milliseconds
    follow_redirects: bool = True
    max_redirects: int = 10


@dataclass
class SecurityConfig:
    """Security configuration for CORS and origin validation."""

    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    cors_enabled: bool = True
    allow_credentials: bool = False


@dataclass(frozen=True)
class ProxyConfig:
    """Main configuration for the proxy.

    Built once at process start. The allow-list holds lower-cased host names
    and never changes afterwards.
    """

    allowlist: Tuple[str, ...] = DEFAULT_ALLOWLIST
    policies: PolicyConfig = field(default_factory=PolicyConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)

    def is_host_allowed(self, host: Optional[str]) -> bool:
        """Check a host name against the allow-list, ignoring case."""
        if not host:
            return False
        return host.lower() in self.allowlist
