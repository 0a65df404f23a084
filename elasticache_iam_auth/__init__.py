"""ElastiCache IAM authentication token generator."""

__version__ = "0.1.0"
