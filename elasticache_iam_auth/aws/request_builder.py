"""Build the signable "connect" request for a cache identity."""

from elasticache_iam_auth.aws.exceptions import SigningError
from elasticache_iam_auth.aws.models import CacheIdentity, SigningRequest

REQUEST_METHOD = "GET"
# Required by the signing algorithm only; stripped before the token is used
REQUEST_PROTOCOL = "http://"

PARAM_ACTION = "Action"
PARAM_USER = "User"
PARAM_RESOURCE_TYPE = "ResourceType"
ACTION_NAME = "connect"


def build_connect_request(identity: CacheIdentity, username: str) -> SigningRequest:
    """Assemble the fixed-shape connect request.

    Args:
        identity: Resolved cache identity
        username: ElastiCache user id the token is issued for

    Returns:
        Unsigned SigningRequest with Action, User and (serverless only)
        ResourceType parameters, in that order

    Raises:
        SigningError: If the username is empty
    """
    if not username:
        raise SigningError("使用者名稱不可為空")

    query_params = {
        PARAM_ACTION: ACTION_NAME,
        PARAM_USER: username,
    }
    if identity.is_serverless:
        query_params[PARAM_RESOURCE_TYPE] = identity.variant.value

    return SigningRequest(
        method=REQUEST_METHOD,
        endpoint=f"{REQUEST_PROTOCOL}{identity.name}/",
        query_params=query_params,
    )
