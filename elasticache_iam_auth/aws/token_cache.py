"""Optional reuse of IAM auth tokens within their validity window."""

import hashlib
import logging
import threading
from datetime import timedelta
from typing import Dict, Tuple

from elasticache_iam_auth.aws.models import TOKEN_EXPIRY_SECONDS, AuthToken, Credentials
from elasticache_iam_auth.aws.signer import to_utc
from elasticache_iam_auth.aws.token import IAMTokenGenerator

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = 60  # seconds before expiry at which a cached token is replaced


class CachingTokenProvider:
    """Hands out cached tokens until ``refresh_margin`` seconds before expiry.

    Entries are keyed by credential identity (access key id plus a digest of
    the session token), so rotated credentials always get a new token.
    Lookup and population happen under one lock: concurrent callers wait for
    the single in-flight generation instead of signing in parallel.
    """

    def __init__(self, generator: IAMTokenGenerator, refresh_margin: int = DEFAULT_REFRESH_MARGIN):
        """Initialize caching provider.

        Args:
            generator: Token generator to delegate to
            refresh_margin: Seconds before expiry at which tokens are regenerated

        Raises:
            ValueError: If refresh_margin is outside 1..899
        """
        if not 0 < refresh_margin < TOKEN_EXPIRY_SECONDS:
            raise ValueError(
                f"無效的 refresh_margin：{refresh_margin}。必須介於 1 到 {TOKEN_EXPIRY_SECONDS - 1} 秒之間"
            )

        self.generator = generator
        self.refresh_margin = timedelta(seconds=refresh_margin)
        self._tokens: Dict[Tuple[str, str], AuthToken] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _cache_key(credentials: Credentials) -> Tuple[str, str]:
        token_digest = hashlib.sha256((credentials.session_token or "").encode("utf-8")).hexdigest()
        return credentials.access_key_id, token_digest

    def get_token(self) -> AuthToken:
        """Return a token with more than ``refresh_margin`` seconds left."""
        credentials = self.generator.credential_source()
        key = self._cache_key(credentials)

        with self._lock:
            now = to_utc(self.generator.clock())
            cached = self._tokens.get(key)
            if cached is not None and now + self.refresh_margin < cached.expires_at:
                logger.debug(f"Using cached IAM auth token ({cached.seconds_remaining(now):.0f}s remaining)")
                return cached

            token = self.generator.generate(credentials=credentials, at=now)
            # Drop entries that can no longer be handed out
            self._tokens = {
                k: v for k, v in self._tokens.items()
                if now + self.refresh_margin < v.expires_at
            }
            self._tokens[key] = token
            logger.debug(f"Cached new IAM auth token for key {credentials.masked_access_key}")
            return token

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __call__(self) -> AuthToken:
        return self.get_token()
