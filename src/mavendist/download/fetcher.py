"""
Distribution archive retrieval.

HttpDownloadTool performs one transfer on a worker thread. Fetcher reuses an
archive already present in the staging directory and otherwise drives the
download tool, restarting the whole transfer on failure until the attempt
budget is spent.
"""

import importlib.metadata
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests
from requests.adapters import HTTPAdapter
from rich.console import Console
from urllib3.util.retry import Retry  # type: ignore

from mavendist.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DOWNLOAD_POLL_INTERVAL,
    MAX_DOWNLOAD_ATTEMPTS,
    RETRY_STATUS_FORCELIST,
)
from mavendist.exceptions import DownloadAttemptsExhaustedError, DownloadExecutionError
from mavendist.log_utils import logger

from .interfaces import (
    DistributionSource,
    DownloadExecution,
    DownloadTool,
    Pathish,
    ProgressCallback,
)


_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `mavendist/{version}`, where `{version}` is the installed package version or `unknown` if it cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version("mavendist")
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"mavendist/{app_version}"

    return _USER_AGENT_CACHE


class HttpDownloadTool(DownloadTool):
    """
    Downloads a URL to a local file on a background thread.

    HTTP(S) transfers stream through a requests Session whose adapter retries
    connection-level failures. ``file://`` URLs are copied locally. The body
    is written straight to the target path; a failed transfer may leave a
    partial file behind.
    """

    def __init__(
        self,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connect_retries: int = DEFAULT_CONNECT_RETRIES,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.request_timeout = request_timeout
        self.connect_retries = connect_retries
        self._executor = executor

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="mavendist-download"
            )
        return self._executor

    def execute(self, url: str, target: Pathish) -> DownloadExecution:
        future = self.executor.submit(self._transfer, url, Path(target))
        return DownloadExecution(future, url, target)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=self.connect_retries,
            connect=self.connect_retries,
            read=self.connect_retries,
            status=self.connect_retries,
            backoff_factor=DEFAULT_BACKOFF_FACTOR,
            status_forcelist=list(RETRY_STATUS_FORCELIST),
            allowed_methods=frozenset({"GET", "HEAD"}),
            raise_on_status=False,
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers["User-Agent"] = get_user_agent()
        return session

    def _transfer(self, url: str, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        if urlparse(url).scheme.lower() == "file":
            return self._copy_local(url, target)
        return self._download_http(url, target)

    def _copy_local(self, url: str, target: Path) -> Path:
        source_path = url2pathname(urlparse(url).path)
        try:
            shutil.copyfile(source_path, target)
        except OSError as e:
            raise DownloadExecutionError(
                f"Copying {url} failed", url=url, target=str(target), details=str(e)
            ) from e
        logger.debug(f"Copied {source_path} to {target}")
        return target

    def _download_http(self, url: str, target: Path) -> Path:
        session = self._create_session()
        response = None
        try:
            start_time = time.time()
            response = session.get(url, stream=True, timeout=self.request_timeout)
            logger.debug(
                f"Received HTTP response status code: {response.status_code} for URL: {url}"
            )
            # Status-based retries have already been applied by urllib3's Retry
            response.raise_for_status()

            downloaded_bytes = 0
            with open(target, "wb") as file:
                for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                    if chunk:
                        file.write(chunk)
                        downloaded_bytes += len(chunk)

            elapsed = time.time() - start_time
            logger.debug("Download elapsed time: %.2fs for %s", elapsed, url)
            file_size_mb = downloaded_bytes / (1024 * 1024)
            if file_size_mb >= 1.0:
                logger.info(f"Downloaded: {target.name} ({file_size_mb:.1f} MB)")
            else:
                logger.info(f"Downloaded: {target.name} ({downloaded_bytes} bytes)")
            return target
        except requests.exceptions.RequestException as e:
            raise DownloadExecutionError(
                f"Network error downloading {url}",
                url=url,
                target=str(target),
                details=str(e),
            ) from e
        except OSError as e:
            raise DownloadExecutionError(
                f"File I/O error while downloading {url} to {target}",
                url=url,
                target=str(target),
                details=str(e),
            ) from e
        finally:
            if response is not None:
                try:
                    response.close()
                except (requests.exceptions.RequestException, OSError) as e:
                    logger.warning(f"Error closing HTTP response for {url}: {e}")
            session.close()


class DotProgress:
    """Prints one dot per progress tick and a newline once the transfer ends."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)
        self.ticks = 0

    def __call__(self) -> None:
        self.ticks += 1
        self.console.print(".", end="")

    def finish(self) -> None:
        if self.ticks:
            self.console.print()
        self.ticks = 0


class Fetcher:
    """
    Retrieves a distribution archive into a staging directory.

    An archive already present under the expected name is reused as-is,
    without any size or digest check against the remote.
    """

    def __init__(
        self,
        download_tool: Optional[DownloadTool] = None,
        max_attempts: int = MAX_DOWNLOAD_ATTEMPTS,
        poll_interval: float = DOWNLOAD_POLL_INTERVAL,
        progress: Optional[ProgressCallback] = None,
        show_progress: bool = True,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.download_tool = download_tool or HttpDownloadTool()
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        if progress is None and show_progress:
            progress = DotProgress()
        self.progress = progress

    def target_path(self, source: DistributionSource, staging_dir: Pathish) -> Path:
        """Absolute local path the archive of `source` is stored at."""
        return Path(os.path.abspath(os.path.join(staging_dir, source.file_name)))

    def fetch(self, source: DistributionSource, staging_dir: Pathish) -> Path:
        """
        Return the local archive for `source`, downloading it if it is not already staged.

        Raises:
            DownloadAttemptsExhaustedError: If every attempt failed; the last DownloadExecutionError is chained as the cause.
        """
        target = self.target_path(source, staging_dir)
        if target.exists():
            logger.info(f"Using previously downloaded {target.name} from {target.parent}")
            return target

        last_error: Optional[DownloadExecutionError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._run_download(source.url, target)
            except DownloadExecutionError as e:
                last_error = e
                remaining = self.max_attempts - attempt
                if remaining > 0:
                    logger.error(
                        f"Downloading Maven binaries failed: {e}. "
                        f"Trying again - number of remaining attempts: {remaining}"
                    )
                else:
                    logger.error(
                        f"Downloading Maven binaries failed: {e}. "
                        "No attempts left; see the chained exception for details."
                    )

        raise DownloadAttemptsExhaustedError(
            f"Failed to download {source.url} after {self.max_attempts} attempts",
            url=source.url,
            attempts=self.max_attempts,
            details=str(last_error),
        ) from last_error

    def _run_download(self, url: str, target: Path) -> Path:
        logger.info(f"Downloading Maven binaries from {url} to {target}")
        execution = self.download_tool.execute(url, target)
        try:
            return execution.await_result(
                progress=self.progress, poll_interval=self.poll_interval
            )
        finally:
            if isinstance(self.progress, DotProgress):
                self.progress.finish()
