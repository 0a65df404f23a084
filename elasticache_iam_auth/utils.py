"""Utility functions for the ElastiCache IAM auth CLI."""

import logging
from typing import Optional

from elasticache_iam_auth.aws.models import CacheVariant
from elasticache_iam_auth.aws.signer import SigningStrategy

# Variant parameter (CLI format) -> CacheVariant; "auto" infers from the endpoint
VARIANT_MAPPING = {
    "auto": None,
    "cluster": CacheVariant.CLUSTER,
    "serverless": CacheVariant.SERVERLESS_CACHE,
}


def parse_variant(variant_str: str) -> Optional[CacheVariant]:
    """Parse variant parameter string.

    Args:
        variant_str: "auto", "cluster" or "serverless"

    Returns:
        CacheVariant, or None to infer from the endpoint

    Raises:
        ValueError: If the variant is unknown
    """
    key = variant_str.strip().lower()
    if key not in VARIANT_MAPPING:
        raise ValueError(
            f"無效的快取類型：{variant_str}。"
            f"有效類型：{', '.join(VARIANT_MAPPING)}"
        )
    return VARIANT_MAPPING[key]


def parse_strategy(strategy_str: str) -> SigningStrategy:
    """Parse signing strategy parameter string.

    Raises:
        ValueError: If the strategy is unknown
    """
    try:
        return SigningStrategy(strategy_str.strip().lower())
    except ValueError:
        raise ValueError(
            f"無效的簽章策略：{strategy_str}。"
            f"有效策略：{', '.join(s.value for s in SigningStrategy)}"
        )


def setup_logger(verbose: bool = False) -> logging.Logger:
    """Setup logger with appropriate level.

    Args:
        verbose: Enable DEBUG level logging

    Returns:
        Configured logger
    """
    logger = logging.getLogger("elasticache_iam_auth")

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # Console handler (stderr) so stdout carries only the token
    handler = logging.StreamHandler()
    handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger
