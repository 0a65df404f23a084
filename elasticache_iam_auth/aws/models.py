"""Data models for ElastiCache IAM authentication."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

SERVICE_NAME = "elasticache"
TOKEN_EXPIRY_SECONDS = 900  # 15 minutes, fixed by ElastiCache


class CacheVariant(str, Enum):
    """Deployment flavour of the target cache."""

    CLUSTER = "Cluster"
    SERVERLESS_CACHE = "ServerlessCache"


@dataclass(frozen=True)
class Credentials:
    """AWS credential triple borrowed for a single signing call."""

    access_key_id: str
    secret_key: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)

    @property
    def masked_access_key(self) -> str:
        """Access key id safe for logging (first 5 characters only)."""
        return f"{(self.access_key_id or '')[:5]}..."


@dataclass(frozen=True)
class CacheIdentity:
    """Cache resource derived from the connection endpoint."""

    name: str
    region: str
    variant: CacheVariant = CacheVariant.CLUSTER
    service_name: str = SERVICE_NAME

    @property
    def is_serverless(self) -> bool:
        return self.variant is CacheVariant.SERVERLESS_CACHE


@dataclass
class SigningRequest:
    """Signable "connect" request.

    Query parameters keep insertion order; that order is the one used when
    the request is serialized into a token.
    """

    endpoint: str
    method: str = "GET"
    query_params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthToken:
    """Signed token submitted as the AUTH password."""

    value: str = field(repr=False)
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def issued(cls, value: str, issued_at: datetime) -> "AuthToken":
        return cls(
            value=value,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=TOKEN_EXPIRY_SECONDS),
        )

    def seconds_remaining(self, at: datetime) -> float:
        """Seconds left in the validity window at the given instant (never negative)."""
        return max((self.expires_at - at).total_seconds(), 0.0)

    def is_expired(self, at: datetime) -> bool:
        return at >= self.expires_at
