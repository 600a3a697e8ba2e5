"""Batch lifecycle orchestration."""

from .lifecycle import BatchLifecycle, is_duplicate_key_error

__all__ = ["BatchLifecycle", "is_duplicate_key_error"]
