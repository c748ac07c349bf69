"""
Per-project asset pipeline and the order-level batch runner.

ProjectPipeline takes one project from its render manifest to a merged PDF
on disk:

    PENDING -> FETCHING -> EXTRACTING -> LOCATING -> MERGING -> PERSISTING -> DONE

Any stage may end in FAILED with the typed error that caused it. The
workspace created for extraction is removed before ``run`` returns, on
success and on failure alike.

OrderPipeline runs ProjectPipeline for every project of an order and
captures each outcome as a value, so a broken archive or manifest in one
project never prevents the remaining projects from being processed.
"""

from __future__ import annotations

import logging
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .archive import ArchiveFetcher, extract_archive
from .assets import LocatedAssets, locate_assets
from .documents import count_pages, merge_documents
from .errors import DownloadError, ExtractionError, InternalError, NotFoundError, PipelineError
from .models import ErrorDetail, OrderStatus, ProjectId, ProjectOutcome, ProjectPayload, ProjectState, RenderManifest
from .storage import persist_document, reap_workspace
from .utils import ensure_directory, sanitize_label

logger = logging.getLogger(__name__)


@dataclass
class ProjectResult:
    """
    Outcome of one ProjectPipeline invocation.

    Attributes:
        project_id: Identifier from the webhook payload
        project_index: 1-based position of the project in its order
        state: DONE on success, FAILED otherwise
        path: Persisted PDF path on success
        page_count: Page count of the pages document only (cover excluded)
        error: The typed error that ended the pipeline on failure
    """

    project_id: Optional[ProjectId]
    project_index: Optional[int]
    state: ProjectState = ProjectState.PENDING
    path: Optional[Path] = None
    page_count: Optional[int] = None
    error: Optional[PipelineError] = None
    history: List[ProjectState] = field(default_factory=lambda: [ProjectState.PENDING])

    @property
    def succeeded(self) -> bool:
        return self.state is ProjectState.DONE

    def to_outcome(self) -> ProjectOutcome:
        return ProjectOutcome(
            project_id=self.project_id,
            project_index=self.project_index or 1,
            status="success" if self.succeeded else "failed",
            path=str(self.path) if self.path else None,
            page_count=self.page_count,
            error=ErrorDetail(**self.error.to_dict()) if self.error else None,
        )


def derive_status(outcomes: Iterable[bool]) -> OrderStatus:
    """Collapse per-project success flags into an order status; no projects counts as failure."""
    flags = list(outcomes)
    if not flags or not any(flags):
        return OrderStatus.FAILURE
    if all(flags):
        return OrderStatus.SUCCESS
    return OrderStatus.PARTIAL


@dataclass
class OrderResult:
    order_id: str
    results: List[ProjectResult] = field(default_factory=list)

    @property
    def status(self) -> OrderStatus:
        return derive_status(result.succeeded for result in self.results)

    @property
    def successes(self) -> List[ProjectResult]:
        return [result for result in self.results if result.succeeded]

    @property
    def failures(self) -> List[ProjectResult]:
        return [result for result in self.results if not result.succeeded]


class ProjectPipeline:
    """
    Fetch, extract, locate, merge and persist a single project.

    Args:
        fetcher: Downloads archive bytes
        temp_root: Parent directory for per-invocation workspaces
        output_root: Directory receiving merged PDFs
        clock: Time source used in workspace names
    """

    def __init__(
        self,
        fetcher: ArchiveFetcher,
        temp_root: Path,
        output_root: Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.fetcher = fetcher
        self.temp_root = temp_root
        self.output_root = output_root
        self.clock = clock

    def run(
        self,
        project_id: Optional[ProjectId],
        manifest: Optional[RenderManifest],
        order_id: str,
        project_index: Optional[int] = None,
    ) -> ProjectResult:
        result = ProjectResult(project_id=project_id, project_index=project_index)

        if manifest is None or not manifest.url:
            return self._fail(result, DownloadError("No render URL found in project"))
        filenames = manifest.filenames()
        if not filenames:
            return self._fail(result, NotFoundError("No files found in render data"))

        workspace: Optional[Path] = None
        try:
            self._advance(result, ProjectState.FETCHING)
            archive = self.fetcher.fetch(manifest.url)

            self._advance(result, ProjectState.EXTRACTING)
            workspace = self._create_workspace(project_id)
            extract_archive(archive.data, workspace)

            self._advance(result, ProjectState.LOCATING)
            assets = locate_assets(workspace, filenames)
            cover, pages = self._read_assets(assets)

            self._advance(result, ProjectState.MERGING)
            page_count = count_pages(pages) if pages is not None else 0
            merged = merge_documents(cover, pages)

            self._advance(result, ProjectState.PERSISTING)
            path = persist_document(merged, order_id, project_index, self.output_root)
        except PipelineError as exc:
            return self._fail(result, exc)
        finally:
            if workspace is not None:
                reap_workspace(workspace)

        result.path = path
        result.page_count = page_count
        self._advance(result, ProjectState.DONE)
        logger.info(f"Project {project_id} for order {order_id} saved to {path} ({page_count} pages)")
        return result

    def _create_workspace(self, project_id: Optional[ProjectId]) -> Path:
        label = sanitize_label(project_id, fallback="project")
        stamp = int(self.clock() * 1000)
        try:
            ensure_directory(self.temp_root)
            # mkdtemp creates the directory atomically with a unique suffix
            return Path(tempfile.mkdtemp(prefix=f"extract_{label}_{stamp}_", dir=self.temp_root))
        except OSError as exc:
            raise ExtractionError(f"Could not create workspace: {exc}") from exc

    @staticmethod
    def _read_assets(assets: LocatedAssets) -> tuple[Optional[bytes], Optional[bytes]]:
        def _read(path: Optional[Path], label: str) -> Optional[bytes]:
            if path is None:
                return None
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise NotFoundError(f"Could not read {label} PDF {path.name}: {exc}") from exc
            logger.info(f"Read {label} PDF, size: {len(data)} bytes")
            return data

        return _read(assets.cover_path, "cover"), _read(assets.pages_path, "pages")

    @staticmethod
    def _advance(result: ProjectResult, state: ProjectState) -> None:
        logger.debug(f"Project {result.project_id}: {result.state.value} -> {state.value}")
        result.state = state
        result.history.append(state)

    def _fail(self, result: ProjectResult, error: PipelineError) -> ProjectResult:
        logger.error(
            f"Error processing PDFs for project {result.project_id} during {result.state.value}: "
            f"{error.kind}: {error.message}"
        )
        result.error = error
        self._advance(result, ProjectState.FAILED)
        return result


class OrderPipeline:
    """
    Run ProjectPipeline over every project of an order.

    Projects are numbered from 1 in payload order and that number drives the
    output filename. With ``max_workers`` above one the projects run on a
    thread pool; results are still returned in payload order.
    """

    def __init__(self, project_pipeline: ProjectPipeline, max_workers: int = 1) -> None:
        self.project_pipeline = project_pipeline
        self.max_workers = max(1, max_workers)

    def run(self, projects: Sequence[ProjectPayload], order_id: str) -> OrderResult:
        logger.info(f"Processing order {order_id}, projects: {len(projects)}")
        indexed = list(enumerate(projects, start=1))

        if self.max_workers > 1 and len(indexed) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(lambda item: self._run_project(order_id, len(indexed), *item), indexed))
        else:
            results = [self._run_project(order_id, len(indexed), index, project) for index, project in indexed]

        order_result = OrderResult(order_id=order_id, results=results)
        logger.info(
            f"Order {order_id} finished with status {order_result.status.value}: "
            f"{len(order_result.successes)} succeeded, {len(order_result.failures)} failed"
        )
        return order_result

    def _run_project(self, order_id: str, total: int, index: int, project: ProjectPayload) -> ProjectResult:
        logger.info(f"Processing project {project.id} ({index}/{total}) for order {order_id}")

        if project.render is None or not project.render.filenames():
            logger.warning(f"Project {project.id} has no render files")
            error = NotFoundError("No render files found")
            return ProjectResult(
                project_id=project.id,
                project_index=index,
                state=ProjectState.FAILED,
                error=error,
                history=[ProjectState.PENDING, ProjectState.FAILED],
            )

        try:
            return self.project_pipeline.run(project.id, project.render, order_id, project_index=index)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Unexpected error processing project {project.id}")
            return ProjectResult(
                project_id=project.id,
                project_index=index,
                state=ProjectState.FAILED,
                error=InternalError(str(exc) or type(exc).__name__),
                history=[ProjectState.PENDING, ProjectState.FAILED],
            )
