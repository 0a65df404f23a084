"""Credential sources injected into token generation.

A credential source is any zero-argument callable returning Credentials or
raising CredentialResolutionError.
"""

import logging
import time
from functools import wraps
from typing import Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ProfileNotFound

from elasticache_iam_auth.aws.exceptions import CredentialResolutionError
from elasticache_iam_auth.aws.models import Credentials

logger = logging.getLogger(__name__)

CredentialSource = Callable[[], Credentials]


def handle_credential_errors(func: Callable) -> Callable:
    """Decorator translating botocore failures into CredentialResolutionError.

    Throttled STS/IMDS calls are retried with exponential backoff.

    Args:
        func: Function to wrap

    Returns:
        Wrapped function with error handling
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        max_retries = 3
        retry_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                return func(*args, **kwargs)
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")

                if error_code in ["Throttling", "ThrottlingException", "RequestLimitExceeded"]:
                    if attempt < max_retries - 1:
                        wait_time = retry_delay * (2 ** attempt)
                        logger.warning(
                            f"Credential resolution throttled, retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                        )
                        time.sleep(wait_time)
                        continue

                raise CredentialResolutionError(e, error_code)

            except NoCredentialsError as e:
                raise CredentialResolutionError(e)

            except BotoCoreError as e:
                raise CredentialResolutionError(e, type(e).__name__)

        raise CredentialResolutionError(detail="重試次數已用盡")

    return wrapper


class StaticCredentialSource:
    """Returns the same credentials on every call (tests, short scripts)."""

    def __init__(self, credentials: Credentials):
        self._credentials = credentials

    def __call__(self) -> Credentials:
        return self._credentials


class BotocoreCredentialSource:
    """Resolves credentials through the boto3 default provider chain.

    botocore caches and refreshes temporary credentials internally and is
    safe for concurrent reads, so one instance may back a whole connection
    pool. Credentials are frozen per call so a refresh cannot split a
    key/secret/token triple.
    """

    def __init__(self, profile: Optional[str] = None, region: Optional[str] = None):
        """Initialize credential source.

        Args:
            profile: AWS profile name (default: environment/default chain)
            region: AWS region name

        Raises:
            CredentialResolutionError: If the named profile does not exist
        """
        self.profile = profile

        try:
            self.session = boto3.Session(profile_name=profile, region_name=region)
        except ProfileNotFound as e:
            raise CredentialResolutionError(e, f"profile={profile}")

        logger.info(f"Initialized credential source for profile={profile or 'default chain'}, region={self.session.region_name}")

    @property
    def region_name(self) -> Optional[str]:
        """Region configured for the session, if any."""
        return self.session.region_name

    @handle_credential_errors
    def __call__(self) -> Credentials:
        resolved = self.session.get_credentials()
        if resolved is None:
            raise CredentialResolutionError(detail=f"profile={self.profile or 'default chain'}")

        frozen = resolved.get_frozen_credentials()
        if not frozen.access_key or not frozen.secret_key:
            raise CredentialResolutionError(detail="認證內容不完整")

        credentials = Credentials(
            access_key_id=frozen.access_key,
            secret_key=frozen.secret_key,
            session_token=frozen.token or None,
        )
        logger.debug(f"Resolved credentials for access key: {credentials.masked_access_key}")
        return credentials
