"""Utility modules for Request Engine."""

from .sanitizer import (
    add_sensitive_keys,
    get_sensitive_keys,
    is_sensitive_key,
    mask_headers,
    mask_sensitive_data,
    mask_url,
    remove_sensitive_keys,
)

__all__ = [
    'mask_sensitive_data',
    'mask_url',
    'mask_headers',
    'is_sensitive_key',
    'add_sensitive_keys',
    'remove_sensitive_keys',
    'get_sensitive_keys',
]
