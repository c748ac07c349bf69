"""
Output persistence and workspace removal.

Merged PDFs are written to the configured output root under a name derived
from the order identifier and project position. Workspaces are removed with
a single recursive delete whose failures are reported as CleanupWarning and
never raised.
"""

from __future__ import annotations

import logging
import shutil
import warnings
from pathlib import Path
from typing import Optional

from .errors import CleanupWarning, PersistError
from .utils import ensure_directory

logger = logging.getLogger(__name__)


def output_filename(order_id: str, project_index: Optional[int] = None) -> str:
    """
    Deterministic output name for a project.

    Example:
        >>> output_filename("A1", 1)
        "A1.pdf"
        >>> output_filename("A1", 2)
        "A1-2.pdf"
        >>> output_filename("A1", None)
        "A1.pdf"
    """
    safe_order_id = str(order_id).replace("/", "-").replace("\\", "-")
    suffix = f"-{project_index}" if project_index is not None and project_index != 1 else ""
    return f"{safe_order_id}{suffix}.pdf"


def persist_document(data: bytes, order_id: str, project_index: Optional[int], output_root: Path) -> Path:
    """
    Write merged PDF bytes to ``output_root``.

    Raises:
        PersistError: If the directory cannot be created or the file cannot be written
    """
    try:
        ensure_directory(output_root)
        file_path = output_root / output_filename(order_id, project_index)
        file_path.write_bytes(data)
    except OSError as exc:
        logger.error(f"Failed to save PDF for order {order_id}: {exc}")
        raise PersistError(f"Failed to save PDF: {exc}") from exc

    logger.info(f"PDF saved to: {file_path}")
    return file_path


def reap_workspace(path: Path) -> bool:
    """
    Recursively delete a workspace directory.

    Never raises, even when warnings are configured as errors.

    Returns:
        True if the directory is gone afterwards, False if removal failed
    """
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
    except OSError as exc:
        message = f"Failed to delete directory {path}: {exc}"
        logger.warning(message)
        try:
            warnings.warn(message, CleanupWarning, stacklevel=2)
        except CleanupWarning:
            logger.debug(f"CleanupWarning escalated by warnings filter for {path}")
        return False
    logger.info(f"Deleted directory: {path}")
    return True


def delete_file(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning(f"Failed to delete file {path}: {exc}")
        return False
    logger.info(f"Deleted file: {path}")
    return True
