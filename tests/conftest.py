import concurrent.futures
import io
import tarfile
import zipfile
from pathlib import Path

import platformdirs
import pytest
import requests

from mavendist.config import ResolverSettings
from mavendist.download.interfaces import DownloadExecution, DownloadTool
from mavendist.exceptions import DownloadExecutionError

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)

MAVEN_ROOT = "apache-maven-3.9.6"
MAVEN_URL = (
    "https://archive.apache.org/dist/maven/maven-3/3.9.6/binaries/"
    "apache-maven-3.9.6-bin.tar.gz"
)


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated unit tests")
    config.addinivalue_line(
        "markers", "integration: tests exercising several components together"
    )


def pytest_runtest_setup():
    """Prevent real network requests during tests."""
    requests.get = _block_network
    requests.head = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point the home directory and platformdirs locations into a temporary tree.

    Keeps tests from touching the real user cache, config and log directories.
    """
    base = tmp_path_factory.mktemp("mavendist")
    home_dir = base / "home"
    config_dir = base / "config"
    log_dir = base / "log"
    for path in (home_dir, config_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def build_tar_gz(path: Path, members: dict) -> Path:
    """
    Write a gzip-compressed tar archive.

    Parameters:
        path (Path): Archive to create.
        members (dict): Mapping of member name to bytes content; a value of None creates a directory entry.
    """
    with tarfile.open(path, "w:gz") as tar:
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o755 if "/bin/" in name else 0o644
                tar.addfile(info, io.BytesIO(content))
    return path


def build_zip(path: Path, members: dict) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content if content is not None else b"")
    return path


def maven_members(root: str = MAVEN_ROOT) -> dict:
    return {
        f"{root}/": None,
        f"{root}/bin/": None,
        f"{root}/bin/mvn": b"#!/bin/sh\necho maven\n",
        f"{root}/conf/settings.xml": b"<settings/>",
        f"{root}/README.txt": b"Apache Maven",
    }


@pytest.fixture
def maven_archive_bytes(tmp_path_factory) -> bytes:
    """Bytes of a tar.gz with the single-root layout of a Maven distribution."""
    archive = tmp_path_factory.mktemp("archives") / "apache-maven-3.9.6-bin.tar.gz"
    build_tar_gz(archive, maven_members())
    return archive.read_bytes()


class FakeDownloadTool(DownloadTool):
    """
    Download tool that writes canned bytes instead of using the network.

    The first `failures` executions fail with DownloadExecutionError. Every
    execution is recorded in `calls`.
    """

    def __init__(self, content: bytes, failures: int = 0, before_write=None):
        self.content = content
        self.failures = failures
        self.before_write = before_write
        self.calls = []
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)

    def execute(self, url, target):
        self.calls.append((url, Path(target)))
        attempt = len(self.calls)
        future = self._executor.submit(self._transfer, url, Path(target), attempt)
        return DownloadExecution(future, url, target)

    def _transfer(self, url, target, attempt):
        if self.before_write is not None:
            self.before_write()
        if attempt <= self.failures:
            raise DownloadExecutionError(
                f"simulated failure {attempt}", url=url, target=str(target)
            )
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.content)
        return target


@pytest.fixture
def fake_download_tool(maven_archive_bytes):
    return FakeDownloadTool(maven_archive_bytes)


@pytest.fixture
def settings(tmp_path) -> ResolverSettings:
    return ResolverSettings(
        cache_dir=tmp_path / "home" / ".mavendist" / "resolver" / "maven",
        build_output_dir=tmp_path / "target",
        poll_interval=0.01,
    )


@pytest.fixture
def download_tool_factory(maven_archive_bytes):
    """Return a factory for FakeDownloadTool instances serving the Maven archive by default."""

    def _factory(content=None, failures=0, before_write=None):
        return FakeDownloadTool(
            maven_archive_bytes if content is None else content,
            failures=failures,
            before_write=before_write,
        )

    return _factory


@pytest.fixture
def archive_factory(tmp_path):
    """Return a factory that writes tar.gz or zip archives under tmp_path/archives."""
    archive_dir = tmp_path / "archives"
    archive_dir.mkdir(exist_ok=True)

    def _factory(name, members):
        path = archive_dir / name
        if name.endswith(".zip"):
            return build_zip(path, members)
        return build_tar_gz(path, members)

    return _factory


@pytest.fixture
def maven_layout():
    return maven_members
