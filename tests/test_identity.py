"""Unit tests for cache identity resolution."""

import pytest

from elasticache_iam_auth.aws.exceptions import InvalidEndpointError
from elasticache_iam_auth.aws.identity import (
    extract_resource_name,
    infer_variant,
    resolve_cache_identity,
)
from elasticache_iam_auth.aws.models import CacheVariant


SERVERLESS_HOST = "cache-01-vk-yiy6se.serverless.euw1.cache.amazonaws.com"


class TestExtractResourceName:
    """Test extract_resource_name() function."""

    def test_serverless_endpoint(self):
        """Test the serverless endpoint keeps the full first label."""
        assert extract_resource_name(SERVERLESS_HOST) == "cache-01-vk-yiy6se"

    @pytest.mark.parametrize("host,expected", [
        ("my-rg.abc123.clustercfg.use1.cache.amazonaws.com", "my-rg"),
        ("master.my-rg.abc123.use1.cache.amazonaws.com", "my-rg"),
        ("replica.my-rg.abc123.use1.cache.amazonaws.com", "my-rg"),
        ("my-rg-0001-001.my-rg.abc123.use1.cache.amazonaws.com", "my-rg"),
        ("my-cluster-001.abc123.0001.use1.cache.amazonaws.com", "my-cluster"),
        ("cache-01.abc123.ng.0001.euw1.cache.amazonaws.com", "cache-01"),
    ])
    def test_cluster_endpoints(self, host, expected):
        """Test role prefixes and node suffixes are removed for cluster endpoints."""
        assert extract_resource_name(host) == expected

    @pytest.mark.parametrize("host", [
        SERVERLESS_HOST.upper(),
        f"  {SERVERLESS_HOST}.  ",
        f"{SERVERLESS_HOST}:6379",
        f"rediss://{SERVERLESS_HOST}:6379/0",
    ])
    def test_normalization(self, host):
        """Test case, whitespace, trailing dot, port and scheme are ignored."""
        assert extract_resource_name(host) == "cache-01-vk-yiy6se"

    @pytest.mark.parametrize("host", ["localhost", "", "   "])
    def test_single_label_rejected(self, host):
        """Test hostnames with fewer than two labels raise InvalidEndpointError."""
        with pytest.raises(InvalidEndpointError):
            extract_resource_name(host)

    def test_empty_label_rejected(self):
        """Test hostnames with empty labels raise InvalidEndpointError."""
        with pytest.raises(InvalidEndpointError):
            extract_resource_name("my-cache..use1.cache.amazonaws.com")

    def test_serverless_without_name_rejected(self):
        """Test a hostname starting with the serverless label yields no name."""
        with pytest.raises(InvalidEndpointError) as exc_info:
            extract_resource_name("serverless.euw1.cache.amazonaws.com")

        assert exc_info.value.host == "serverless.euw1.cache.amazonaws.com"

    def test_only_role_prefix_rejected(self):
        """Test a hostname made of role prefixes yields no name."""
        with pytest.raises(InvalidEndpointError):
            extract_resource_name("master.replica")


class TestInferVariant:
    """Test infer_variant() function."""

    def test_serverless_label(self):
        """Test the serverless label selects SERVERLESS_CACHE."""
        assert infer_variant(SERVERLESS_HOST) is CacheVariant.SERVERLESS_CACHE

    def test_cluster(self):
        """Test other endpoints select CLUSTER."""
        assert infer_variant("my-rg.abc123.clustercfg.use1.cache.amazonaws.com") is CacheVariant.CLUSTER

    def test_substring_is_not_label(self):
        """Test 'serverless' inside a label does not count."""
        assert infer_variant("my-serverless-app.abc123.use1.cache.amazonaws.com") is CacheVariant.CLUSTER


class TestResolveCacheIdentity:
    """Test resolve_cache_identity() function."""

    def test_serverless_identity(self):
        """Test the reference serverless endpoint."""
        identity = resolve_cache_identity(SERVERLESS_HOST, "eu-west-1")

        assert identity.name == "cache-01-vk-yiy6se"
        assert identity.region == "eu-west-1"
        assert identity.variant is CacheVariant.SERVERLESS_CACHE
        assert identity.service_name == "elasticache"
        assert identity.is_serverless

    def test_explicit_variant_overrides_inference(self):
        """Test an explicit variant hint wins over the hostname."""
        identity = resolve_cache_identity(
            "my-rg.abc123.clustercfg.use1.cache.amazonaws.com",
            "us-east-1",
            CacheVariant.SERVERLESS_CACHE,
        )

        assert identity.name == "my-rg"
        assert identity.variant is CacheVariant.SERVERLESS_CACHE

    @pytest.mark.parametrize("region", ["", "  ", None])
    def test_missing_region_rejected(self, region):
        """Test a missing region raises InvalidEndpointError before signing."""
        with pytest.raises(InvalidEndpointError):
            resolve_cache_identity(SERVERLESS_HOST, region)

    def test_single_label_host_rejected(self):
        """Test a single-label host raises InvalidEndpointError."""
        with pytest.raises(InvalidEndpointError):
            resolve_cache_identity("my-cache", "eu-west-1")
