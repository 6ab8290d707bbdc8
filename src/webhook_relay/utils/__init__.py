"""
Module: utils
Description: Package initialization for utility functions.

This package contains shared helpers used throughout the webhook relay.

Current utilities:
- logger: Structured logging configuration and helpers
- metrics: CloudWatch metrics publishing
"""

__all__ = []
