"""
Builders for test PDFs, tar archives and a fake archive host.
"""

import io
import tarfile

import httpx
from pypdf import PdfWriter

from print_render_backend.archive import ArchiveFetcher


def make_pdf(num_pages: int = 1, width: float = 612, height: float = 792) -> bytes:
    """Build a PDF with ``num_pages`` blank pages."""
    writer = PdfWriter()
    for _ in range(num_pages):
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def make_tar(members: dict, mode: str = "w") -> bytes:
    """Build a tar archive from ``{member_path: bytes}``."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as archive:
        for name, data in members.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class ArchiveServer:
    """Maps URLs to archive bytes and answers through an httpx MockTransport."""

    def __init__(self):
        self.archives = {}
        self.statuses = {}
        self.requests = []

    def add(self, url: str, data: bytes, status_code: int = 200) -> str:
        self.archives[url] = data
        self.statuses[url] = status_code
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url not in self.archives:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(self.statuses[url], content=self.archives[url])

    def fetcher(self) -> ArchiveFetcher:
        client = httpx.Client(transport=httpx.MockTransport(self.handler))
        return ArchiveFetcher(timeout=5.0, client=client)
