"""SigV4 query-string signing for ElastiCache connect requests.

Two strategies share one call signature:

- ``SigningStrategy.SIGV4``: native four-step SigV4 presigning. Deterministic
  for a fixed ``signed_at``; this is the default.
- ``SigningStrategy.BOTOCORE``: delegates to ``botocore.signers.RequestSigner``.
  botocore stamps the request with its own clock, so ``signed_at`` is ignored.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl, quote, urlsplit

from botocore.credentials import Credentials as BotocoreCredentials
from botocore.exceptions import BotoCoreError
from botocore.hooks import HierarchicalEmitter
from botocore.model import ServiceId
from botocore.signers import RequestSigner

from elasticache_iam_auth.aws.exceptions import SigningError
from elasticache_iam_auth.aws.models import TOKEN_EXPIRY_SECONDS, Credentials, SigningRequest
from elasticache_iam_auth.aws.request_builder import ACTION_NAME

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
SCOPE_TERMINATOR = "aws4_request"
SIGNED_HEADERS = "host"
EMPTY_PAYLOAD_SHA256 = hashlib.sha256(b"").hexdigest()

PARAM_ALGORITHM = "X-Amz-Algorithm"
PARAM_CREDENTIAL = "X-Amz-Credential"
PARAM_DATE = "X-Amz-Date"
PARAM_EXPIRES = "X-Amz-Expires"
PARAM_SIGNED_HEADERS = "X-Amz-SignedHeaders"
PARAM_SIGNATURE = "X-Amz-Signature"
PARAM_SECURITY_TOKEN = "X-Amz-Security-Token"

AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"


class SigningStrategy(str, Enum):
    """Selectable signing implementation."""

    SIGV4 = "sigv4"
    BOTOCORE = "botocore"


def uri_encode(value: str) -> str:
    """Percent-encode everything outside the SigV4 unreserved set."""
    return quote(value, safe="-_.~")


def encode_query(params: Dict[str, str], sort: bool = False) -> str:
    """Serialize query parameters as ``name=value`` pairs joined with ``&``.

    Args:
        params: Parameter mapping
        sort: Sort by encoded name then value (canonical form)

    Returns:
        Encoded query string
    """
    pairs = [(uri_encode(k), uri_encode(v)) for k, v in params.items()]
    if sort:
        pairs.sort()
    return "&".join(f"{k}={v}" for k, v in pairs)


def build_canonical_request(method: str, path: str, query_params: Dict[str, str], host: str) -> str:
    """Step 1: canonical request.

    Only the ``host`` header is signed; the token cannot carry any other header.
    """
    return "\n".join([
        method,
        path or "/",
        encode_query(query_params, sort=True),
        f"host:{host}\n",
        SIGNED_HEADERS,
        EMPTY_PAYLOAD_SHA256,
    ])


def build_string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
    """Step 2: string to sign, scoped to date/region/service."""
    return "\n".join([
        ALGORITHM,
        amz_date,
        scope,
        hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
    ])


def _hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, datestamp: str, region: str, service_name: str) -> bytes:
    """Step 3: HMAC chain secret -> date -> region -> service -> terminator."""
    k_date = _hmac_sha256(f"AWS4{secret_key}".encode("utf-8"), datestamp)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service_name)
    return _hmac_sha256(k_service, SCOPE_TERMINATOR)


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Step 4: hex-encoded HMAC-SHA256 of the string to sign."""
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def to_utc(moment: datetime) -> datetime:
    """Normalize to an aware UTC datetime truncated to whole seconds.

    Naive datetimes are taken to be UTC already.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0)


def _validate_credentials(credentials: Optional[Credentials]) -> None:
    if credentials is None:
        raise SigningError("缺少 AWS 認證")

    access_key_id = credentials.access_key_id
    secret_key = credentials.secret_key
    if not isinstance(access_key_id, str) or not access_key_id.strip():
        raise SigningError("AWS Access Key ID 為空")
    if not isinstance(secret_key, str) or not secret_key.strip():
        raise SigningError("AWS Secret Access Key 為空")
    # The key id becomes the first segment of the slash-delimited credential scope
    if "/" in access_key_id or access_key_id != access_key_id.strip():
        raise SigningError("AWS Access Key ID 格式錯誤")
    if credentials.session_token is not None and not isinstance(credentials.session_token, str):
        raise SigningError("AWS Session Token 格式錯誤")


def _validate_scope(region: str, service_name: str, expires_in: int) -> None:
    if not region:
        raise SigningError("未指定 AWS Region")
    if not service_name:
        raise SigningError("未指定服務名稱")
    if isinstance(expires_in, bool) or not isinstance(expires_in, int):
        raise SigningError(f"無效的有效期限：{expires_in!r}")
    if not 0 < expires_in <= TOKEN_EXPIRY_SECONDS:
        raise SigningError(f"有效期限必須介於 1 到 {TOKEN_EXPIRY_SECONDS} 秒之間：{expires_in}")


def _request_host(request: SigningRequest) -> str:
    host = urlsplit(request.endpoint).netloc
    if not host:
        raise SigningError(f"請求端點缺少主機名稱：{request.endpoint}")
    return host


def sign_request(
    request: SigningRequest,
    region: str,
    service_name: str,
    credentials: Credentials,
    signed_at: datetime,
    expires_in: int = TOKEN_EXPIRY_SECONDS
) -> SigningRequest:
    """Presign a request with SigV4 query parameters.

    The input request is left untouched; a signed copy is returned with the
    signature parameters appended after the existing ones in this order:
    X-Amz-Algorithm, X-Amz-Credential, X-Amz-Date, X-Amz-Expires,
    X-Amz-SignedHeaders, X-Amz-Signature and, when the credentials carry a
    session token, X-Amz-Security-Token. The session token is part of the
    canonical query even though it is serialized last.

    Args:
        request: Unsigned request
        region: AWS region of the signing scope
        service_name: Service of the signing scope ("elasticache")
        credentials: Credentials for this call only; not retained
        signed_at: Signing instant; start of the validity window
        expires_in: Validity window in seconds

    Returns:
        Signed SigningRequest

    Raises:
        SigningError: If credentials, scope or request are unusable
    """
    _validate_credentials(credentials)
    _validate_scope(region, service_name, expires_in)
    host = _request_host(request)
    path = urlsplit(request.endpoint).path or "/"

    signed_at = to_utc(signed_at)
    amz_date = signed_at.strftime(AMZ_DATE_FORMAT)
    datestamp = amz_date[:8]
    scope = f"{datestamp}/{region}/{service_name}/{SCOPE_TERMINATOR}"

    params = dict(request.query_params)
    params[PARAM_ALGORITHM] = ALGORITHM
    params[PARAM_CREDENTIAL] = f"{credentials.access_key_id}/{scope}"
    params[PARAM_DATE] = amz_date
    params[PARAM_EXPIRES] = str(expires_in)
    params[PARAM_SIGNED_HEADERS] = SIGNED_HEADERS

    canonical_params = dict(params)
    if credentials.session_token:
        canonical_params[PARAM_SECURITY_TOKEN] = credentials.session_token

    canonical_request = build_canonical_request(request.method, path, canonical_params, host)
    string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)
    signing_key = derive_signing_key(credentials.secret_key, datestamp, region, service_name)

    params[PARAM_SIGNATURE] = compute_signature(signing_key, string_to_sign)
    if credentials.session_token:
        params[PARAM_SECURITY_TOKEN] = credentials.session_token

    logger.debug(
        f"Signed {request.method} {host} at {amz_date} for {expires_in}s "
        f"(scope={scope}, key={credentials.masked_access_key})"
    )

    headers = dict(request.headers)
    headers["host"] = host
    return SigningRequest(
        endpoint=request.endpoint,
        method=request.method,
        query_params=params,
        headers=headers,
    )


def sign_request_with_botocore(
    request: SigningRequest,
    region: str,
    service_name: str,
    credentials: Credentials,
    signed_at: Optional[datetime] = None,
    expires_in: int = TOKEN_EXPIRY_SECONDS
) -> SigningRequest:
    """Presign a request through botocore's RequestSigner.

    Same contract as sign_request except that the signature timestamp comes
    from botocore's clock, so output is not reproducible.
    """
    _validate_credentials(credentials)
    _validate_scope(region, service_name, expires_in)
    _request_host(request)

    # RequestSigner only holds a weak proxy to the emitter
    emitter = HierarchicalEmitter()
    request_signer = RequestSigner(
        ServiceId(service_name),
        region,
        service_name,
        "v4",
        BotocoreCredentials(
            credentials.access_key_id,
            credentials.secret_key,
            credentials.session_token,
        ),
        emitter,
    )
    url = f"{request.endpoint}?{encode_query(request.query_params)}"

    try:
        signed_url = request_signer.generate_presigned_url(
            {"method": request.method, "url": url, "body": {}, "headers": {}, "context": {}},
            operation_name=ACTION_NAME,
            expires_in=expires_in,
            region_name=region,
        )
    except (BotoCoreError, ReferenceError, TypeError, ValueError) as e:
        raise SigningError(f"botocore 預簽章失敗：{e}", e)

    parts = urlsplit(signed_url)
    logger.debug(f"Signed {request.method} {parts.netloc} via botocore (key={credentials.masked_access_key})")
    return SigningRequest(
        endpoint=f"{parts.scheme}://{parts.netloc}{parts.path}",
        method=request.method,
        query_params=dict(parse_qsl(parts.query, keep_blank_values=True)),
        headers={"host": parts.netloc},
    )


SIGNERS: Dict[SigningStrategy, Callable[..., SigningRequest]] = {
    SigningStrategy.SIGV4: sign_request,
    SigningStrategy.BOTOCORE: sign_request_with_botocore,
}


def get_signer(strategy: SigningStrategy) -> Callable[..., SigningRequest]:
    """Look up the signing function for a strategy."""
    try:
        return SIGNERS[SigningStrategy(strategy)]
    except ValueError as e:
        raise SigningError(f"未知的簽章策略：{strategy}", e)
