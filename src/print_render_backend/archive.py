"""
Archive retrieval and unpacking for rendered print projects.

The renderer delivers each project as a tar archive reachable over plain
HTTP. ``ArchiveFetcher`` downloads it in a single attempt with a bounded
timeout and ``extract_archive`` unpacks it into a project workspace.
"""

from __future__ import annotations

import logging
import tarfile
import time
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from .errors import DownloadError, ExtractionError
from .utils import ensure_directory

logger = logging.getLogger(__name__)

# Rendered photo books can be several hundred megabytes
DEFAULT_FETCH_TIMEOUT = 120.0

TEMP_ARCHIVE_NAME = "temp.tar"


@dataclass(frozen=True)
class FetchedArchive:
    data: bytes
    size: int


class ArchiveFetcher:
    """
    Downloads archive bytes into memory.

    There is no retry policy here: redelivery of the upstream webhook is the
    only recovery path, so a failed attempt is reported immediately.

    httpx applies its timeout to each connect, read and write separately, so
    the whole download is additionally held to ``timeout`` seconds by a
    deadline checked while the body streams in.

    Args:
        timeout: Overall request timeout in seconds
        client: Optional pre-built ``httpx.Client``; when given it is used
            as-is and left open for the caller to close
        clock: Monotonic time source for the overall deadline
    """

    def __init__(
        self,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self._client = client
        self._clock = clock

    def fetch(self, url: str) -> FetchedArchive:
        logger.info(f"Downloading tar file from: {url}")
        deadline = self._clock() + self.timeout
        try:
            with ExitStack() as stack:
                client = self._client
                if client is None:
                    client = stack.enter_context(httpx.Client(timeout=self.timeout, follow_redirects=True))
                response = stack.enter_context(client.stream("GET", url, timeout=self.timeout))
                response.raise_for_status()
                expected = response.headers.get("content-length")
                data = self._read_body(response, url, deadline)
        except httpx.HTTPStatusError as exc:
            logger.error(f"Failed to download tar file from {url}: HTTP {exc.response.status_code}")
            raise DownloadError(f"Tar file download failed: HTTP {exc.response.status_code} from {url}") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Failed to download tar file from {url}: {exc}")
            raise DownloadError(f"Tar file download failed: {exc}") from exc

        if expected is not None and expected.isdigit() and len(data) < int(expected):
            raise DownloadError(f"Tar file download truncated: received {len(data)} of {expected} bytes from {url}")

        logger.info(f"Successfully downloaded tar file, size: {len(data)} bytes")
        return FetchedArchive(data=data, size=len(data))

    def _read_body(self, response: httpx.Response, url: str, deadline: float) -> bytes:
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if self._clock() > deadline:
                logger.error(f"Failed to download tar file from {url}: exceeded {self.timeout:g}s")
                raise DownloadError(f"Tar file download failed: timed out after {self.timeout:g}s from {url}")
        return b"".join(chunks)


def _is_unsafe_member(member: tarfile.TarInfo) -> bool:
    name = member.name
    if name.startswith(("/", "\\")) or ".." in Path(name).parts:
        return True
    return member.issym() or member.islnk() or member.isdev()


def extract_archive(data: bytes, destination: Path) -> Path:
    """
    Unpack tar bytes into ``destination``.

    The bytes are staged as ``temp.tar`` inside the destination and removed
    again whether or not extraction succeeds. Members that would land outside
    the destination, links and device nodes are skipped. The resulting tree
    may be nested arbitrarily deep.

    Args:
        data: Raw archive bytes (plain or compressed tar)
        destination: Directory to extract into, created if absent

    Returns:
        The destination directory

    Raises:
        ExtractionError: If the archive is malformed or cannot be written
    """
    logger.info(f"Extracting tar file to: {destination}")
    archive_path = destination / TEMP_ARCHIVE_NAME
    try:
        ensure_directory(destination)
        archive_path.write_bytes(data)
        with tarfile.open(archive_path, "r:*") as archive:
            members = []
            for member in archive.getmembers():
                if _is_unsafe_member(member):
                    logger.warning(f"Skipping potentially dangerous archive member: {member.name}")
                    continue
                members.append(member)
            if hasattr(tarfile, "data_filter"):
                archive.extractall(destination, members=members, filter="data")
            else:  # pragma: no cover - interpreters without extraction filters
                archive.extractall(destination, members=members)
    except (tarfile.TarError, OSError) as exc:
        logger.error(f"Failed to extract tar file: {exc}")
        raise ExtractionError(f"Tar extraction failed: {exc}") from exc
    finally:
        archive_path.unlink(missing_ok=True)

    logger.info(f"Successfully extracted tar file to: {destination}")
    return destination
