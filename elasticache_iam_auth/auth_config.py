"""Connection configuration that authenticates to ElastiCache with IAM.

IAMAuthConfig is a redis-py credential provider: every time redis-py opens a
connection it asks for credentials and receives the configured user plus a
freshly signed token as the password.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from elasticache_iam_auth.aws.credentials import BotocoreCredentialSource, CredentialSource
from elasticache_iam_auth.aws.identity import resolve_cache_identity
from elasticache_iam_auth.aws.models import AuthToken, CacheIdentity, CacheVariant
from elasticache_iam_auth.aws.signer import SigningStrategy
from elasticache_iam_auth.aws.token import IAMTokenGenerator, utc_now
from elasticache_iam_auth.aws.token_cache import CachingTokenProvider

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6379
DEFAULT_TIMEOUT = 10.0  # seconds


class IAMAuthConfig(redis.CredentialProvider):
    """IAM-authenticated connection settings for one ElastiCache endpoint."""

    def __init__(
        self,
        username: str,
        region: Optional[str],
        host: str,
        port: int = DEFAULT_PORT,
        credential_source: Optional[CredentialSource] = None,
        connect_timeout: float = DEFAULT_TIMEOUT,
        read_timeout: float = DEFAULT_TIMEOUT,
        ssl: bool = True,
        ssl_check_hostname: bool = True,
        ssl_parameters: Optional[Dict[str, Any]] = None,
        variant: Optional[CacheVariant] = None,
        strategy: SigningStrategy = SigningStrategy.SIGV4,
        token_cache_margin: Optional[int] = None,
        profile: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """Initialize IAM auth config.

        Args:
            username: ElastiCache user id (sent unsigned in AUTH)
            region: AWS region; falls back to the credential source's region
            host: ElastiCache endpoint hostname
            port: ElastiCache port
            credential_source: Credentials callable (default: boto3 provider chain)
            connect_timeout: Connection timeout in seconds
            read_timeout: Socket read timeout in seconds
            ssl: Whether to use TLS
            ssl_check_hostname: Verify the server hostname against its certificate
            ssl_parameters: TLS material as redis-py ssl_* keyword arguments
                (ssl_ca_certs, ssl_certfile, ...), passed through
            variant: Explicit cache variant; inferred from host when None
            strategy: Signing implementation
            token_cache_margin: Reuse tokens until this many seconds before
                expiry; None generates a new token on every password read
            profile: AWS profile for the default credential source
            clock: Returns the current time

        Raises:
            InvalidEndpointError: If host or region cannot be resolved
            CredentialResolutionError: If the default credential source cannot be built
        """
        if credential_source is None:
            credential_source = BotocoreCredentialSource(profile=profile, region=region)

        self.username = username
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.ssl = ssl
        self.ssl_check_hostname = ssl_check_hostname
        self.ssl_parameters = dict(ssl_parameters or {})

        region = region or getattr(credential_source, "region_name", None)
        self.identity: CacheIdentity = resolve_cache_identity(host, region or "", variant)
        self.region = self.identity.region

        self.generator = IAMTokenGenerator(
            self.identity,
            username,
            credential_source,
            clock=clock,
            strategy=strategy,
        )
        self._token_provider: Callable[[], AuthToken] = self.generator
        if token_cache_margin is not None:
            self._token_provider = CachingTokenProvider(self.generator, refresh_margin=token_cache_margin)

        logger.debug(
            f"Initialized IAMAuthConfig for cache: {self.identity.name}, user: {username}, "
            f"serverless: {self.identity.is_serverless}, ssl: {ssl}"
        )

    @property
    def token(self) -> AuthToken:
        """A token for the next connection attempt."""
        return self._token_provider()

    @property
    def password(self) -> str:
        """Signed token string; regenerated on every read unless caching is enabled."""
        return self.token.value

    def get_credentials(self) -> Tuple[str, str]:
        """redis-py hook called for every new connection."""
        return self.username, self.password

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``redis.Redis`` / ``redis.ConnectionPool``."""
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "credential_provider": self,
            "socket_connect_timeout": self.connect_timeout,
            "socket_timeout": self.read_timeout,
            "ssl": self.ssl,
        }
        if self.ssl:
            kwargs["ssl_check_hostname"] = self.ssl_check_hostname
            kwargs["ssl_cert_reqs"] = "required" if self.ssl_check_hostname else "none"
            kwargs.update(self.ssl_parameters)
        return kwargs

    def create_client(self) -> redis.Redis:
        """Build a redis client that authenticates with IAM tokens."""
        return redis.Redis(**self.connection_kwargs())
