"""Custom exceptions for ElastiCache IAM token generation."""

from typing import Optional


class IAMAuthError(Exception):
    """Base exception for IAM authentication errors."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """Initialize IAM auth error.

        Args:
            message: Error message in Chinese
            suggestion: Suggested solution in Chinese
            original_error: Original exception for debugging
        """
        self.message = message
        self.suggestion = suggestion
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format error message."""
        msg = self.message
        if self.suggestion:
            msg += f"\n建議：{self.suggestion}"
        return msg


class InvalidEndpointError(IAMAuthError):
    """Exception raised when the cache endpoint cannot be parsed.

    Not retryable: the configuration has to be fixed.
    """

    def __init__(self, host: str, reason: str):
        """Initialize invalid endpoint error.

        Args:
            host: Endpoint hostname as supplied by the caller
            reason: Why the hostname was rejected
        """
        self.host = host
        self.reason = reason
        message = f"無效的 ElastiCache 端點：'{host}' ({reason})"
        suggestion = "請確認端點格式，例如 my-cache-abc123.serverless.use1.cache.amazonaws.com"
        super().__init__(message, suggestion)


class CredentialResolutionError(IAMAuthError):
    """Exception raised when no usable AWS credentials can be resolved."""

    def __init__(self, original_error: Optional[Exception] = None, detail: Optional[str] = None):
        """Initialize credentials error.

        Args:
            original_error: Original exception
            detail: Extra context, e.g. the profile name
        """
        message = "AWS 認證錯誤：找不到有效的 AWS 認證"
        if detail:
            message += f" ({detail})"
        suggestion = (
            "請確認已設定 AWS CLI、IAM 角色或環境變數 "
            "(AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_SESSION_TOKEN)"
        )
        super().__init__(message, suggestion, original_error)


class SigningError(IAMAuthError):
    """Exception raised when a request cannot be signed.

    Indicates an invariant violation such as an empty secret key; never retried.
    """

    def __init__(self, reason: str, original_error: Optional[Exception] = None):
        """Initialize signing error.

        Args:
            reason: Which invariant was violated
            original_error: Original exception
        """
        self.reason = reason
        message = f"簽章失敗：{reason}"
        super().__init__(message, None, original_error)
