"""Assemble signed connect requests into ElastiCache IAM auth tokens."""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from elasticache_iam_auth.aws.credentials import CredentialSource, StaticCredentialSource
from elasticache_iam_auth.aws.exceptions import SigningError
from elasticache_iam_auth.aws.identity import resolve_cache_identity
from elasticache_iam_auth.aws.models import (
    TOKEN_EXPIRY_SECONDS,
    AuthToken,
    CacheIdentity,
    CacheVariant,
    Credentials,
    SigningRequest,
)
from elasticache_iam_auth.aws.request_builder import build_connect_request
from elasticache_iam_auth.aws.signer import (
    AMZ_DATE_FORMAT,
    PARAM_DATE,
    PARAM_SIGNATURE,
    SigningStrategy,
    encode_query,
    get_signer,
    to_utc,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def assemble_token(signed_request: SigningRequest) -> str:
    """Flatten a signed request into ``<resource-name>/?<query>``.

    The placeholder scheme is dropped; parameters keep the request's order.

    Raises:
        SigningError: If the request has no host or was never signed
    """
    parts = urlsplit(signed_request.endpoint)
    if not parts.netloc:
        raise SigningError(f"請求端點缺少主機名稱：{signed_request.endpoint}")
    if PARAM_SIGNATURE not in signed_request.query_params:
        raise SigningError("請求尚未簽章")

    return f"{parts.netloc}{parts.path or '/'}?{encode_query(signed_request.query_params)}"


def signed_time(signed_request: SigningRequest) -> datetime:
    """Return the X-Amz-Date a signed request was actually signed at.

    Raises:
        SigningError: If the request carries no parseable X-Amz-Date
    """
    amz_date = signed_request.query_params.get(PARAM_DATE)
    try:
        return datetime.strptime(amz_date, AMZ_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        raise SigningError(f"簽章時間無效：{amz_date}", e)


def parse_token(token: str) -> Tuple[str, Dict[str, str]]:
    """Split a token back into its resource name and decoded query parameters."""
    head, _, query = token.partition("?")
    return head.rstrip("/"), dict(parse_qsl(query, keep_blank_values=True))


class IAMTokenGenerator:
    """Generates IAM auth tokens for one cache identity and user.

    Stateless between calls: every call resolves credentials, builds, signs
    and assembles a new token. Safe to share across threads as long as the
    credential source is.
    """

    def __init__(
        self,
        identity: CacheIdentity,
        username: str,
        credential_source: CredentialSource,
        clock: Callable[[], datetime] = utc_now,
        strategy: SigningStrategy = SigningStrategy.SIGV4
    ):
        """Initialize token generator.

        Args:
            identity: Resolved cache identity
            username: ElastiCache user id
            credential_source: Callable returning Credentials, called per token
            clock: Returns the current time
            strategy: Signing implementation to use
        """
        if not username:
            raise SigningError("使用者名稱不可為空")

        self.identity = identity
        self.username = username
        self.credential_source = credential_source
        self.clock = clock
        self.strategy = SigningStrategy(strategy)
        self._sign = get_signer(self.strategy)

    def generate(self, credentials: Optional[Credentials] = None, at: Optional[datetime] = None) -> AuthToken:
        """Generate a fresh token.

        Args:
            credentials: Use these instead of asking the credential source
            at: Signing time; defaults to the clock

        Returns:
            AuthToken valid for 900 seconds from the X-Amz-Date in the token

        Raises:
            CredentialResolutionError: Propagated from the credential source
            SigningError: If the credentials or request are unusable
        """
        if credentials is None:
            credentials = self.credential_source()

        issued_at = to_utc(at if at is not None else self.clock())
        request = build_connect_request(self.identity, self.username)
        signed = self._sign(
            request,
            self.identity.region,
            self.identity.service_name,
            credentials,
            signed_at=issued_at,
            expires_in=TOKEN_EXPIRY_SECONDS,
        )
        # botocore signs with its own clock
        token = AuthToken.issued(assemble_token(signed), signed_time(signed))

        logger.debug(
            f"Generated IAM auth token for cache={self.identity.name}, user={self.username}, "
            f"key={credentials.masked_access_key}, length={len(token.value)}, "
            f"expires_at={token.expires_at.isoformat()}"
        )
        return token

    def __call__(self) -> AuthToken:
        return self.generate()


def generate_auth_token(
    host: str,
    region: str,
    username: str,
    credentials: Credentials,
    variant: Optional[CacheVariant] = None,
    at: Optional[datetime] = None,
    strategy: SigningStrategy = SigningStrategy.SIGV4
) -> str:
    """One-shot helper: resolve the endpoint and return a token string.

    Args:
        host: Endpoint hostname
        region: AWS region
        username: ElastiCache user id
        credentials: AWS credentials
        variant: Explicit variant hint; inferred when None
        at: Signing time; defaults to now
        strategy: Signing implementation to use

    Returns:
        Token string
    """
    identity = resolve_cache_identity(host, region, variant)
    generator = IAMTokenGenerator(
        identity,
        username,
        StaticCredentialSource(credentials),
        strategy=strategy,
    )
    return generator.generate(at=at).value
