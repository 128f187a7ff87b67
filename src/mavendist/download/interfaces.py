"""
Core Interfaces for the mavendist Download Subsystem

This module defines the data structures passed between the fetcher, the
extractor and the resolver, plus the abstract collaborators that perform the
actual network transfer and archive expansion.
"""

import concurrent.futures
import enum
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union
from urllib.parse import unquote, urlparse

from mavendist.constants import (
    BIN_DIR_NAME,
    DOWNLOAD_POLL_INTERVAL,
    MAVEN_3_URL_TEMPLATE,
    MAVEN_EXECUTABLE,
    SUPPORTED_URL_SCHEMES,
    VERSION_PLACEHOLDER,
)
from mavendist.exceptions import DownloadExecutionError, InvalidDistributionUrlError

Pathish = Union[str, Path]
ProgressCallback = Callable[[], None]


@dataclass(frozen=True)
class DistributionSource:
    """A distribution archive location plus the persistent-cache choice."""

    url: str
    """Absolute URL of the distribution archive"""

    use_cache: bool = True
    """Whether the raw archive is kept in the persistent user cache"""

    def __post_init__(self) -> None:
        parsed = urlparse(self.url)
        if parsed.scheme.lower() not in SUPPORTED_URL_SCHEMES:
            raise InvalidDistributionUrlError(
                f"Unsupported distribution URL: {self.url}",
                url=self.url,
                details=f"scheme must be one of {', '.join(sorted(SUPPORTED_URL_SCHEMES))}",
            )
        if parsed.scheme.lower() != "file" and not parsed.netloc:
            raise InvalidDistributionUrlError(
                f"Distribution URL has no host: {self.url}", url=self.url
            )
        if self.file_name in ("", ".", ".."):
            raise InvalidDistributionUrlError(
                f"Distribution URL does not name a file: {self.url}", url=self.url
            )

    @classmethod
    def from_version(
        cls, version: str, template: str = MAVEN_3_URL_TEMPLATE
    ) -> "DistributionSource":
        """
        Build a cached source by substituting `version` into the URL template.

        Raises:
            InvalidDistributionUrlError: If the version is blank or the resulting URL is not usable.
        """
        if not version or not version.strip():
            raise InvalidDistributionUrlError(
                "A Maven version is required", url=template
            )
        return cls(template.replace(VERSION_PLACEHOLDER, version.strip()), True)

    @classmethod
    def from_url(cls, url: str, use_cache: bool) -> "DistributionSource":
        return cls(str(url), use_cache)

    @property
    def file_name(self) -> str:
        """Final path segment of the URL, used as the local archive name."""
        path = unquote(urlparse(self.url).path)
        return path.rsplit("/", 1)[-1]


class InstallationKind(enum.Enum):
    """Where the Maven installation used downstream comes from."""

    AMBIENT = "ambient"
    EXPLICIT = "explicit"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Installation:
    """
    The selected Maven installation.

    Exactly one kind is active at a time: the executable found on the search
    path (AMBIENT), a caller-supplied directory (EXPLICIT), or a directory
    produced by resolving a distribution archive (RESOLVED).
    """

    kind: InstallationKind
    home: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.kind is InstallationKind.AMBIENT and self.home is not None:
            raise ValueError("An ambient installation has no home directory")
        if self.kind is not InstallationKind.AMBIENT and self.home is None:
            raise ValueError(f"A {self.kind.value} installation needs a home directory")

    @classmethod
    def ambient(cls) -> "Installation":
        return cls(InstallationKind.AMBIENT)

    @classmethod
    def explicit(cls, home: Pathish) -> "Installation":
        return cls(InstallationKind.EXPLICIT, Path(home))

    @classmethod
    def resolved(cls, home: Pathish) -> "Installation":
        return cls(InstallationKind.RESOLVED, Path(home))

    @property
    def is_ambient(self) -> bool:
        return self.kind is InstallationKind.AMBIENT

    @property
    def bin_dir(self) -> Optional[Path]:
        """The installation's executable directory, or None for the ambient installation."""
        if self.home is None:
            return None
        return self.home / BIN_DIR_NAME

    def executable(self, name: str = MAVEN_EXECUTABLE) -> str:
        """
        Return the command used to run `name` from this installation.

        For the ambient installation this is the bare name, looked up on the
        search path at execution time.
        """
        if self.bin_dir is None:
            return name
        return os.path.join(str(self.bin_dir), name)


@dataclass
class ResolutionResult:
    """Outcome of resolving a distribution source."""

    resolved: bool
    """Whether an installation was selected"""

    source: DistributionSource
    """The source that was resolved"""

    archive: Optional[Path] = None
    """Local path of the downloaded (or reused) archive"""

    digest: Optional[str] = None
    """Content digest of the archive; None when hashing failed"""

    extracted_root: Optional[Path] = None
    """The single top-level directory the archive expanded to"""

    installation: Optional[Installation] = None
    """The installation selected by this resolution"""


class DownloadExecution:
    """
    Handle on a transfer running in the background.

    Wraps the future of the transfer so callers can block until it completes
    while still emitting progress on a fixed interval.
    """

    def __init__(
        self, future: "concurrent.futures.Future[Path]", url: str, target: Pathish
    ) -> None:
        self.future = future
        self.url = url
        self.target = Path(target)

    def is_finished(self) -> bool:
        return self.future.done()

    def await_result(
        self,
        progress: Optional[ProgressCallback] = None,
        poll_interval: float = DOWNLOAD_POLL_INTERVAL,
    ) -> Path:
        """
        Block until the transfer completes and return the downloaded file.

        Parameters:
            progress (Optional[ProgressCallback]): Called once per `poll_interval` while the transfer is running.
            poll_interval (float): Seconds between progress callbacks.

        Returns:
            Path: The downloaded file.

        Raises:
            DownloadExecutionError: If the transfer failed; the original exception is chained as the cause.
        """
        while True:
            done, _ = concurrent.futures.wait([self.future], timeout=poll_interval)
            if done:
                break
            if progress is not None:
                progress()

        error = self.future.exception()
        if error is None:
            return self.future.result()
        if isinstance(error, DownloadExecutionError):
            raise error
        raise DownloadExecutionError(
            f"Downloading {self.url} failed",
            url=self.url,
            target=str(self.target),
            details=str(error),
        ) from error


class DownloadTool(ABC):
    """Performs the network transfer of a single file."""

    @abstractmethod
    def execute(self, url: str, target: Pathish) -> DownloadExecution:
        """
        Start transferring `url` to `target` and return a handle on the running transfer.

        The transfer itself may fail later; that failure surfaces from
        DownloadExecution.await_result() as a DownloadExecutionError.
        """


class ArchiveExtractor(ABC):
    """Expands a compressed archive into a directory."""

    @abstractmethod
    def extract(self, archive: Pathish, target_dir: Pathish) -> Path:
        """
        Expand `archive` into `target_dir` and return `target_dir`.

        Raises:
            ExtractionError: If the archive cannot be expanded.
        """
