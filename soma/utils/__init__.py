"""Utility functions for soma."""

from .url import (
    check_repository_name,
    is_file_url,
    is_valid_repository_name,
    parse_repository_address,
    resolve_file_path,
)

__all__ = [
    "check_repository_name",
    "is_file_url",
    "is_valid_repository_name",
    "parse_repository_address",
    "resolve_file_path",
]
