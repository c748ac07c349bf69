"""
Locating the cover and pages PDFs inside an extracted render archive.

The webhook manifest lists the member filenames but not where they sit in
the archive, and renderers nest them at varying depths. Location therefore
runs in two phases: the manifest is classified into cover and pages roles
by filename pattern, then each role is resolved to a physical file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Iterable, Optional, Set, Tuple

from .errors import NotFoundError

logger = logging.getLogger(__name__)

# "_cover.pdf" and names ending in "cover.pdf" are both covered by the substring test
COVER_PATTERN = "cover.pdf"
PAGES_PATTERN = "pages.pdf"


@dataclass(frozen=True)
class LocatedAssets:
    cover_path: Optional[Path] = None
    pages_path: Optional[Path] = None


def classify_manifest(filenames: Iterable[Optional[str]]) -> Tuple[Optional[str], Optional[str]]:
    """
    Pick the manifest filename that plays the cover role and the pages role.

    Matching is case-insensitive and the original spelling is returned. The
    first entry that matches a role wins it; later matches are ignored. The
    two roles are scanned independently, so one filename may fill both.

    Raises:
        NotFoundError: If no filename matches either role
    """
    cover_filename: Optional[str] = None
    pages_filename: Optional[str] = None

    for filename in filenames:
        if not filename:
            continue
        lowered = filename.lower()
        if cover_filename is None and COVER_PATTERN in lowered:
            cover_filename = filename
            logger.info(f"Found cover PDF filename: {cover_filename}")
        if pages_filename is None and PAGES_PATTERN in lowered:
            pages_filename = filename
            logger.info(f"Found pages PDF filename: {pages_filename}")

    if cover_filename is None and pages_filename is None:
        raise NotFoundError("Neither cover nor pages PDF found in files array")
    return cover_filename, pages_filename


def find_file(root: Path, filename: str) -> Optional[Path]:
    """
    Depth-first search below ``root`` for a file named exactly ``filename``.

    Entries are visited in name order so the result is stable across
    filesystems. Symlinked directories are not descended into and every real
    directory is visited at most once. Directories that cannot be listed are
    skipped.
    """
    visited: Set[Tuple[int, int]] = set()

    def _search(directory: Path) -> Optional[Path]:
        try:
            stat = directory.stat()
        except OSError:
            return None
        identity = (stat.st_dev, stat.st_ino)
        if identity in visited:
            return None
        visited.add(identity)

        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            logger.debug(f"Skipping unreadable directory {directory}: {exc}")
            return None

        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                found = _search(Path(entry.path))
                if found is not None:
                    return found
            elif entry.name == filename and entry.is_file():
                return Path(entry.path)
        return None

    return _search(root)


def resolve_asset(destination: Path, filename: str) -> Optional[Path]:
    relative = PurePath(filename)
    if not relative.is_absolute() and ".." not in relative.parts:
        direct = destination / relative
        if direct.is_file():
            return direct
    return find_file(destination, relative.name)


def locate_assets(destination: Path, filenames: Iterable[Optional[str]]) -> LocatedAssets:
    """
    Classify the manifest and resolve each role to a file under ``destination``.

    Args:
        destination: Root of the extracted archive
        filenames: Manifest filenames in webhook order

    Returns:
        LocatedAssets with at least one path set

    Raises:
        NotFoundError: If classification fails or neither role exists on disk
    """
    cover_filename, pages_filename = classify_manifest(filenames)

    cover_path = resolve_asset(destination, cover_filename) if cover_filename else None
    pages_path = resolve_asset(destination, pages_filename) if pages_filename else None

    if cover_path is None and pages_path is None:
        raise NotFoundError("Could not find PDF files in extracted directory")

    if cover_path:
        logger.info(f"Found cover PDF at: {cover_path}")
    elif cover_filename:
        logger.warning(f"Cover PDF {cover_filename} listed in manifest but missing from archive")
    if pages_path:
        logger.info(f"Found pages PDF at: {pages_path}")
    elif pages_filename:
        logger.warning(f"Pages PDF {pages_filename} listed in manifest but missing from archive")

    return LocatedAssets(cover_path=cover_path, pages_path=pages_path)
