"""
Path security validation utilities for Slughouse.

Provides pure functions to validate file paths stay inside the media root,
preventing directory traversal attacks and symlink escapes.
"""

from pathlib import Path
from typing import Optional


def is_path_within_root(file_path: Path, root: Path) -> bool:
    """Pure function - validates path is within the allowed directory.

    Uses Path.resolve() to handle symlinks and relative paths, then checks if the
    resolved path is a child of the root directory.

    Args:
        file_path: The file path to validate
        root: Allowed root directory

    Returns:
        True if path is within root, False otherwise
    """
    try:
        resolved_path = file_path.resolve()
        resolved_root = root.resolve()
        # relative_to raises ValueError if path is not a subpath
        resolved_path.relative_to(resolved_root)
        return resolved_path != resolved_root
    except ValueError:
        return False
    except (OSError, RuntimeError):
        # Path.resolve() can raise OSError for invalid paths or RuntimeError for recursion
        return False


def resolve_media_path(relative_path: str, root: Path) -> Optional[Path]:
    """Pure function - absolute path for a stored file, or None if it escapes root."""
    if not relative_path or not relative_path.strip():
        return None

    candidate = root / relative_path
    if not is_path_within_root(candidate, root):
        return None

    return candidate
