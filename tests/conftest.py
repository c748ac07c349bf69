"""
Pytest configuration and fixtures for Print Render Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest

# Set test environment variables before importing the app
os.environ["TEMP_DIR"] = tempfile.mkdtemp(prefix="render_test_temp_")
os.environ["MONEY_FILE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="render_test_data_"), "money.csv")
os.environ["WHATSAPP_ACCESS_TOKEN"] = ""
os.environ["WHATSAPP_PHONE_NUMBER_ID"] = ""
os.environ["WHATSAPP_RECIPIENT_NUMBER"] = ""

from fastapi.testclient import TestClient

from helpers import ArchiveServer
from print_render_backend.main import app


@pytest.fixture(scope="session")
def test_dirs():
    """Create and cleanup the directories the app was configured with."""
    temp_dir = os.environ["TEMP_DIR"]
    data_dir = os.path.dirname(os.environ["MONEY_FILE_PATH"])

    yield {
        "temp": temp_dir,
        "data": data_dir,
    }

    # Cleanup after all tests
    shutil.rmtree(temp_dir, ignore_errors=True)
    shutil.rmtree(data_dir, ignore_errors=True)


@pytest.fixture
def client(test_dirs):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def archive_server():
    return ArchiveServer()


@pytest.fixture
def workspace_root(tmp_path) -> Path:
    root = tmp_path / "temp"
    root.mkdir()
    return root


@pytest.fixture
def output_root(tmp_path) -> Path:
    return tmp_path / "output"
