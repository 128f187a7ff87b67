"""
Maven distribution resolution.

DistributionResolver turns a version or a distribution URL into a usable
Maven installation: it stages the archive (persistent cache or per-build
directory), fetches it, hashes it, expands it into a digest-named directory
and selects the archive's root directory as the active installation.
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from mavendist.config import ResolverSettings
from mavendist.log_utils import logger

from .fetcher import Fetcher, HttpDownloadTool
from .files import Extractor, calculate_digest
from .interfaces import DistributionSource, Installation, Pathish, ResolutionResult

# Serializes every resolution in the process, across all resolver instances.
RESOLUTION_LOCK = threading.Lock()


class DistributionStage(ABC):
    """
    Configuration step that selects which Maven installation a build uses.

    Every selection method returns the value of next_step() so configuration
    calls can be chained.
    """

    @abstractmethod
    def use_maven3_version(self, version: str) -> Any:
        """Download, cache and use the given Maven 3 version."""

    @abstractmethod
    def use_distribution(self, url: str, use_cache: bool) -> Any:
        """Download and use the distribution archive at `url`."""

    @abstractmethod
    def use_installation(self, maven_home: Pathish) -> Any:
        """Use an existing Maven installation directory."""

    @abstractmethod
    def use_local_installation(self) -> Any:
        """Use whatever Maven is found on the search path at execution time."""

    @abstractmethod
    def use_default_distribution(self) -> Any:
        """Download, cache and use the default Maven version."""

    @abstractmethod
    def next_step(self) -> Any:
        """Return the handle for the next configuration step."""


class DistributionResolver(DistributionStage):
    """
    Resolves Maven distributions and tracks the selected installation.

    The staging, fetch, hash, extract and select sequence runs under
    RESOLUTION_LOCK, so concurrent resolutions in one process never
    interleave, whichever resolver instance they go through. There is no
    cross-process locking.

    The selected installation is a single tagged value; each selection
    replaces the previous one.
    """

    _lock = RESOLUTION_LOCK

    def __init__(
        self,
        settings: Optional[ResolverSettings] = None,
        fetcher: Optional[Fetcher] = None,
        extractor: Optional[Extractor] = None,
        next_step: Any = None,
    ) -> None:
        self.settings = settings or ResolverSettings()
        if fetcher is None:
            fetcher = Fetcher(
                HttpDownloadTool(request_timeout=self.settings.request_timeout),
                max_attempts=self.settings.max_attempts,
                poll_interval=self.settings.poll_interval,
            )
        self.fetcher = fetcher
        self.extractor = extractor or Extractor()
        self._next_step = next_step
        self._installation: Optional[Installation] = None
        self._last_result: Optional[ResolutionResult] = None

    @property
    def installation(self) -> Optional[Installation]:
        """The currently selected installation, or None if nothing was selected yet."""
        return self._installation

    @property
    def last_result(self) -> Optional[ResolutionResult]:
        """Outcome of the most recent distribution resolution."""
        return self._last_result

    def next_step(self) -> Any:
        return self if self._next_step is None else self._next_step

    def use_maven3_version(self, version: str) -> Any:
        """
        Resolve the given Maven 3 version from the configured URL template, with caching on.

        Raises:
            InvalidDistributionUrlError: If the version produces an unusable URL. Raised before any network activity.
        """
        source = DistributionSource.from_version(version, self.settings.url_template)
        self.resolve(source)
        return self.next_step()

    def use_default_distribution(self) -> Any:
        return self.use_maven3_version(self.settings.default_version)

    def use_distribution(self, url: str, use_cache: bool) -> Any:
        """
        Resolve the distribution archive at `url`.

        Raises:
            InvalidDistributionUrlError: If `url` is not a usable distribution URL.
            DownloadAttemptsExhaustedError: If the archive could not be downloaded.
            ExtractionError: If the archive could not be expanded.
            ArchiveLayoutError: If the archive did not expand to exactly one top-level directory.
        """
        self.resolve(DistributionSource.from_url(url, use_cache))
        return self.next_step()

    def use_installation(self, maven_home: Pathish) -> Any:
        self._installation = Installation.explicit(maven_home)
        return self.next_step()

    def use_local_installation(self) -> Any:
        self._installation = Installation.ambient()
        return self.next_step()

    def resolve(self, source: DistributionSource) -> ResolutionResult:
        """
        Fetch, hash and extract `source`, then select the extracted installation.

        When the archive cannot be hashed, nothing is extracted, the selected
        installation is left untouched and a result with `resolved=False` is
        returned.
        """
        with self._lock:
            staging_dir = self._prepare_staging_dir(source.use_cache)
            archive = self.fetcher.fetch(source, staging_dir)
            digest = calculate_digest(archive)
            if digest is None:
                logger.warning(
                    f"Could not compute the hash of {archive}; no Maven installation selected"
                )
                result = ResolutionResult(resolved=False, source=source, archive=archive)
                self._last_result = result
                return result

            extracted_root = self.extractor.extract(
                archive, self.settings.extraction_dir(digest)
            )
            installation = Installation.resolved(extracted_root)
            self._installation = installation
            logger.info(f"Using Maven installation at {extracted_root}")

            result = ResolutionResult(
                resolved=True,
                source=source,
                archive=archive,
                digest=digest,
                extracted_root=extracted_root,
                installation=installation,
            )
            self._last_result = result
            return result

    def _prepare_staging_dir(self, use_cache: bool) -> Path:
        staging_dir = self.settings.staging_dir(use_cache)
        if not staging_dir.exists():
            staging_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created staging directory {staging_dir}")
        return staging_dir
