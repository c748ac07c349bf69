"""
Tests for ProjectPipeline and OrderPipeline.

Tests cover:
- End-to-end merge of a rendered archive
- Workspace removal on success and on every failure kind
- Order-level isolation and status derivation
"""

import io
import warnings

import pytest
from pypdf import PdfReader

from helpers import make_pdf, make_tar
from print_render_backend.errors import DownloadError, ExtractionError, MergeError, NotFoundError
from print_render_backend.models import OrderStatus, ProjectPayload, ProjectState, RenderManifest
from print_render_backend.pipeline import OrderPipeline, ProjectPipeline, derive_status


def _manifest(url, *filenames):
    return RenderManifest(url=url, files=[{"filename": name} for name in filenames])


def _project(project_id, url, *filenames):
    return ProjectPayload(id=project_id, render=_manifest(url, *filenames))


@pytest.fixture
def project_pipeline(archive_server, workspace_root, output_root):
    return ProjectPipeline(archive_server.fetcher(), temp_root=workspace_root, output_root=output_root)


def _workspaces(root):
    return [path for path in root.iterdir() if path.name.startswith("extract_")]


class TestProjectPipeline:
    """Tests for a single project's run."""

    def test_end_to_end_merge(self, archive_server, project_pipeline, workspace_root, output_root):
        url = archive_server.add(
            "https://render.example/proj1.tar",
            make_tar({"proj1_cover.pdf": make_pdf(2), "proj1_pages.pdf": make_pdf(24)}),
        )

        result = project_pipeline.run(
            "proj1", _manifest(url, "proj1_cover.pdf", "proj1_pages.pdf"), "ORD1", project_index=1
        )

        assert result.succeeded
        assert result.state is ProjectState.DONE
        assert result.path == output_root / "ORD1.pdf"
        assert len(PdfReader(io.BytesIO(result.path.read_bytes())).pages) == 26
        assert result.page_count == 24
        assert _workspaces(workspace_root) == []

    def test_state_history(self, archive_server, project_pipeline):
        url = archive_server.add("https://render.example/p.tar", make_tar({"p_pages.pdf": make_pdf(3)}))

        result = project_pipeline.run("p", _manifest(url, "p_pages.pdf"), "ORD2", project_index=2)

        assert result.history == [
            ProjectState.PENDING,
            ProjectState.FETCHING,
            ProjectState.EXTRACTING,
            ProjectState.LOCATING,
            ProjectState.MERGING,
            ProjectState.PERSISTING,
            ProjectState.DONE,
        ]
        assert result.path.name == "ORD2-2.pdf"

    def test_pages_only_is_byte_identical(self, archive_server, project_pipeline):
        pages = make_pdf(5)
        url = archive_server.add("https://render.example/p.tar", make_tar({"nested/dir/p_pages.pdf": pages}))

        result = project_pipeline.run("p", _manifest(url, "p_cover.pdf", "p_pages.pdf"), "ORD3")

        assert result.succeeded
        assert result.path.read_bytes() == pages
        assert result.page_count == 5

    def test_cover_only_reports_zero_pages(self, archive_server, project_pipeline):
        cover = make_pdf(2)
        url = archive_server.add("https://render.example/c.tar", make_tar({"c_cover.pdf": cover}))

        result = project_pipeline.run("c", _manifest(url, "c_cover.pdf"), "ORD4")

        assert result.succeeded
        assert result.path.read_bytes() == cover
        assert result.page_count == 0

    def test_download_failure(self, project_pipeline, workspace_root, output_root):
        result = project_pipeline.run("x", _manifest("https://down.example/x.tar", "x_pages.pdf"), "ORD5")

        assert result.state is ProjectState.FAILED
        assert isinstance(result.error, DownloadError)
        assert _workspaces(workspace_root) == []
        assert not output_root.exists()

    def test_extraction_failure_cleans_workspace(self, archive_server, project_pipeline, workspace_root):
        url = archive_server.add("https://render.example/bad.tar", b"definitely not a tar file" * 50)

        result = project_pipeline.run("bad", _manifest(url, "bad_pages.pdf"), "ORD6")

        assert isinstance(result.error, ExtractionError)
        assert _workspaces(workspace_root) == []

    def test_missing_files_clean_workspace(self, archive_server, project_pipeline, workspace_root):
        url = archive_server.add("https://render.example/m.tar", make_tar({"other.pdf": make_pdf(1)}))

        result = project_pipeline.run("m", _manifest(url, "m_cover.pdf", "m_pages.pdf"), "ORD7")

        assert isinstance(result.error, NotFoundError)
        assert result.history[-2] is ProjectState.LOCATING
        assert _workspaces(workspace_root) == []

    def test_corrupt_pdf_is_merge_error(self, archive_server, project_pipeline, workspace_root):
        url = archive_server.add(
            "https://render.example/k.tar",
            make_tar({"k_cover.pdf": make_pdf(1), "k_pages.pdf": b"broken pdf bytes"}),
        )

        result = project_pipeline.run("k", _manifest(url, "k_cover.pdf", "k_pages.pdf"), "ORD8")

        assert isinstance(result.error, MergeError)
        assert _workspaces(workspace_root) == []

    def test_missing_url_fails_before_fetch(self, archive_server, project_pipeline):
        result = project_pipeline.run("u", RenderManifest(url=None, files=[{"filename": "u_pages.pdf"}]), "ORD9")

        assert isinstance(result.error, DownloadError)
        assert archive_server.requests == []

    def test_unexpected_exception_still_cleans_workspace(self, archive_server, workspace_root, output_root, monkeypatch):
        url = archive_server.add("https://render.example/e.tar", make_tar({"e_pages.pdf": make_pdf(1)}))
        pipeline = ProjectPipeline(archive_server.fetcher(), temp_root=workspace_root, output_root=output_root)

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("print_render_backend.pipeline.locate_assets", explode)

        with pytest.raises(RuntimeError):
            pipeline.run("e", _manifest(url, "e_pages.pdf"), "ORD10")
        assert _workspaces(workspace_root) == []

    def test_cleanup_failure_keeps_success(self, archive_server, project_pipeline, workspace_root, monkeypatch):
        url = archive_server.add("https://render.example/r.tar", make_tar({"r_pages.pdf": make_pdf(2)}))

        def failing_rmtree(path):
            raise PermissionError("busy")

        monkeypatch.setattr("print_render_backend.storage.shutil.rmtree", failing_rmtree)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = project_pipeline.run("r", _manifest(url, "r_pages.pdf"), "ORD11")

        assert result.state is ProjectState.DONE
        assert result.error is None
        assert result.path.exists()
        assert len(_workspaces(workspace_root)) == 1

    def test_workspace_names_do_not_collide(self, archive_server, workspace_root, output_root):
        pipeline = ProjectPipeline(
            archive_server.fetcher(), temp_root=workspace_root, output_root=output_root, clock=lambda: 1000.0
        )
        first = pipeline._create_workspace("same")
        second = pipeline._create_workspace("same")

        assert first != second
        assert first.name.startswith("extract_same_1000000_")


class TestOrderPipeline:
    """Tests for running every project in an order."""

    def test_partial_batch(self, archive_server, project_pipeline, output_root):
        url = archive_server.add("https://render.example/p2.tar", make_tar({"p2_pages.pdf": make_pdf(2)}))
        projects = [
            _project(1, "https://unreachable.example/p1.tar", "p1_pages.pdf"),
            _project(2, url, "p2_pages.pdf"),
        ]

        result = OrderPipeline(project_pipeline).run(projects, "ORD1")

        assert result.status is OrderStatus.PARTIAL
        assert len(result.results) == 2
        assert isinstance(result.failures[0].error, DownloadError)
        assert result.successes[0].path == output_root / "ORD1-2.pdf"
        assert result.successes[0].path.exists()

    def test_empty_manifest_recorded_without_running(self, archive_server, project_pipeline):
        projects = [ProjectPayload(id=7, render=RenderManifest(url="https://render.example/7.tar", files=[]))]

        result = OrderPipeline(project_pipeline).run(projects, "ORD2")

        assert result.status is OrderStatus.FAILURE
        assert isinstance(result.results[0].error, NotFoundError)
        assert archive_server.requests == []

    def test_all_success(self, archive_server, project_pipeline):
        projects = []
        for index in (1, 2, 3):
            url = archive_server.add(f"https://render.example/{index}.tar", make_tar({f"{index}_pages.pdf": make_pdf(index)}))
            projects.append(_project(index, url, f"{index}_pages.pdf"))

        result = OrderPipeline(project_pipeline).run(projects, "ORD3")

        assert result.status is OrderStatus.SUCCESS
        assert [r.project_index for r in result.results] == [1, 2, 3]
        assert [r.path.name for r in result.results] == ["ORD3.pdf", "ORD3-2.pdf", "ORD3-3.pdf"]

    def test_zero_projects_is_failure(self, project_pipeline):
        result = OrderPipeline(project_pipeline).run([], "ORD4")
        assert result.status is OrderStatus.FAILURE
        assert result.results == []

    def test_unexpected_error_does_not_abort_order(self, archive_server, project_pipeline):
        url = archive_server.add("https://render.example/ok.tar", make_tar({"ok_pages.pdf": make_pdf(1)}))

        class FlakyPipeline:
            def run(self, project_id, manifest, order_id, project_index=None):
                if project_id == "bad":
                    raise RuntimeError("unexpected")
                return project_pipeline.run(project_id, manifest, order_id, project_index)

        projects = [_project("bad", url, "ok_pages.pdf"), _project("ok", url, "ok_pages.pdf")]

        result = OrderPipeline(FlakyPipeline()).run(projects, "ORD5")

        assert result.status is OrderStatus.PARTIAL
        assert result.results[0].error.kind == "InternalError"
        assert result.results[1].succeeded

    def test_parallel_run_keeps_declared_order(self, archive_server, project_pipeline):
        projects = []
        for index in range(1, 5):
            url = archive_server.add(f"https://render.example/par{index}.tar", make_tar({"x_pages.pdf": make_pdf(index)}))
            projects.append(_project(f"par{index}", url, "x_pages.pdf"))

        result = OrderPipeline(project_pipeline, max_workers=4).run(projects, "ORD6")

        assert result.status is OrderStatus.SUCCESS
        assert [r.project_id for r in result.results] == ["par1", "par2", "par3", "par4"]
        assert [r.page_count for r in result.results] == [1, 2, 3, 4]


class TestDeriveStatus:
    """Tests for collapsing outcomes into an order status."""

    @pytest.mark.parametrize(
        "flags, expected",
        [
            ([], OrderStatus.FAILURE),
            ([True], OrderStatus.SUCCESS),
            ([False, False], OrderStatus.FAILURE),
            ([True, False], OrderStatus.PARTIAL),
            ([True, True, True], OrderStatus.SUCCESS),
        ],
    )
    def test_status(self, flags, expected):
        assert derive_status(flags) is expected
