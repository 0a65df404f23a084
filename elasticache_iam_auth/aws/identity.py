"""Resolve the cache resource name and variant from an endpoint hostname.

Naming rule (the only one used anywhere in the package):

- Serverless endpoints look like ``<name>.serverless.<region-code>.cache.amazonaws.com``.
  The resource name is every label before the ``serverless`` label.
- Cluster endpoints come in several shapes::

      my-rg.abc123.clustercfg.use1.cache.amazonaws.com      (configuration endpoint)
      master.my-rg.abc123.use1.cache.amazonaws.com          (primary endpoint)
      replica.my-rg.abc123.use1.cache.amazonaws.com         (reader endpoint)
      my-rg-0001-001.my-rg.abc123.use1.cache.amazonaws.com  (node endpoint)
      my-rg-001.abc123.0001.use1.cache.amazonaws.com        (node endpoint)

  The resource name is the first label that is not a role prefix, with a
  trailing node/shard suffix (``-0001-001`` or ``-001``) stripped.
"""

import logging
import re
from typing import List, Optional

from elasticache_iam_auth.aws.exceptions import InvalidEndpointError
from elasticache_iam_auth.aws.models import CacheIdentity, CacheVariant

logger = logging.getLogger(__name__)

SERVERLESS_LABEL = "serverless"

# Leading labels that name an endpoint role rather than the cache itself
ROLE_PREFIX_LABELS = frozenset({"master", "replica", "clustercfg"})

# <name>-<shard:4 digits>-<node:3 digits> or <name>-<node:3 digits>
NODE_SUFFIX_PATTERN = re.compile(r"(?:-\d{4})?-\d{3}$")


def _normalize_host(host: str) -> str:
    """Strip whitespace, an accidental scheme, a port and the trailing root dot."""
    normalized = host.strip()
    if "://" in normalized:
        normalized = normalized.split("://", 1)[1]
    normalized = normalized.split("/", 1)[0]
    if ":" in normalized:
        normalized = normalized.rsplit(":", 1)[0]
    return normalized.rstrip(".").lower()


def _split_labels(host: str, original: str) -> List[str]:
    labels = host.split(".")
    if len(labels) < 2:
        raise InvalidEndpointError(original, "主機名稱至少需要兩個標籤")
    if any(not label for label in labels):
        raise InvalidEndpointError(original, "主機名稱包含空白標籤")
    return labels


def infer_variant(host: str) -> CacheVariant:
    """Return SERVERLESS_CACHE iff a hostname label is exactly ``serverless``."""
    labels = _normalize_host(host).split(".")
    if SERVERLESS_LABEL in labels:
        return CacheVariant.SERVERLESS_CACHE
    return CacheVariant.CLUSTER


def extract_resource_name(host: str) -> str:
    """Derive the resource name the signing service expects.

    Args:
        host: Endpoint hostname

    Returns:
        Resource name, e.g. ``cache-01-vk-yiy6se`` for
        ``cache-01-vk-yiy6se.serverless.euw1.cache.amazonaws.com``

    Raises:
        InvalidEndpointError: If the hostname is malformed or yields an empty name
    """
    normalized = _normalize_host(host)
    labels = _split_labels(normalized, host)

    if SERVERLESS_LABEL in labels:
        name = ".".join(labels[:labels.index(SERVERLESS_LABEL)])
    else:
        candidates = [label for label in labels if label not in ROLE_PREFIX_LABELS]
        name = NODE_SUFFIX_PATTERN.sub("", candidates[0]) if candidates else ""

    if not name:
        raise InvalidEndpointError(host, "無法從主機名稱取得快取名稱")

    return name


def resolve_cache_identity(
    host: str,
    region: str,
    variant: Optional[CacheVariant] = None
) -> CacheIdentity:
    """Resolve the CacheIdentity for an endpoint.

    Args:
        host: Endpoint hostname
        region: AWS region the cache lives in (e.g. "eu-west-1")
        variant: Explicit variant hint; inferred from the hostname when None

    Returns:
        CacheIdentity

    Raises:
        InvalidEndpointError: If the hostname or region is unusable
    """
    if not region or not region.strip():
        raise InvalidEndpointError(host, "未指定 AWS Region")

    name = extract_resource_name(host)
    inferred = infer_variant(host)

    if variant is None:
        variant = inferred
    elif variant is not inferred:
        logger.debug(f"Variant hint {variant.value} overrides inferred {inferred.value} for {host}")

    identity = CacheIdentity(name=name, region=region.strip(), variant=variant)
    logger.info(f"Resolved cache identity: name={identity.name}, region={identity.region}, variant={identity.variant.value}")
    return identity
