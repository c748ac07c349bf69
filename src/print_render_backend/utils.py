"""
Utility functions for file system operations and string sanitization.

This module provides helper functions for:
- Sanitizing webhook-provided identifiers for safe filesystem usage
- Ensuring directory creation with proper error handling
"""

from __future__ import annotations

import re
from pathlib import Path

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_label(label: object, fallback: str) -> str:
    """
    Generate a filesystem-safe label from webhook input.

    Project identifiers arrive as integers or strings and are embedded in
    workspace directory names, so anything outside ``[A-Za-z0-9._-]`` is
    replaced before use.

    Args:
        label: The original value to sanitize (converted with ``str``)
        fallback: Default value to return if sanitization results in an empty string

    Returns:
        A lowercase, filesystem-safe label or the fallback value

    Example:
        >>> sanitize_label("Project 42!", "project")
        "project-42"
        >>> sanitize_label(None, "project")
        "project"
    """
    if label is None:
        return fallback
    # Replace non-safe characters with hyphens and normalize whitespace
    cleaned = SANITIZE_PATTERN.sub("-", str(label).strip())
    # Remove leading/trailing separators and convert to lowercase
    cleaned = cleaned.strip("-_.").lower()
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    This is a safe idempotent operation that won't fail if the directory
    already exists.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
