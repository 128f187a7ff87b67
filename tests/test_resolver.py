"""
Resolution tests for DistributionResolver.

Exercises the stage, fetch, hash, extract and select sequence end to end
with an in-process download tool, including reuse of cached archives,
layout failures, hash failures and serialization of concurrent calls.
"""

import dataclasses
import threading
from unittest.mock import patch

import pytest

from mavendist.download.fetcher import Fetcher, HttpDownloadTool
from mavendist.download.files import calculate_digest
from mavendist.download.interfaces import DistributionSource, InstallationKind
from mavendist.download.resolver import RESOLUTION_LOCK, DistributionResolver
from mavendist.exceptions import (
    ArchiveLayoutError,
    ConfigurationError,
    DownloadAttemptsExhaustedError,
    ExtractionError,
    InvalidDistributionUrlError,
)

MAVEN_URL = (
    "https://archive.apache.org/dist/maven/maven-3/3.9.6/binaries/"
    "apache-maven-3.9.6-bin.tar.gz"
)


def make_resolver(settings, tool, **kwargs):
    fetcher = Fetcher(tool, poll_interval=0.01, show_progress=False)
    return DistributionResolver(settings=settings, fetcher=fetcher, **kwargs)


class TestResolveFromUrl:
    def test_single_root_archive_becomes_installation(self, settings, download_tool_factory):
        tool = download_tool_factory()
        resolver = make_resolver(settings, tool)

        resolver.use_distribution(MAVEN_URL, True)

        installation = resolver.installation
        result = resolver.last_result
        assert result.resolved
        assert installation.kind is InstallationKind.RESOLVED
        assert installation.home == settings.extraction_dir(result.digest) / "apache-maven-3.9.6"
        assert (installation.bin_dir / "mvn").is_file()
        assert result.extracted_root == installation.home
        assert result.installation == installation

    def test_second_resolution_reuses_archive_and_extraction(self, settings, download_tool_factory):
        tool = download_tool_factory()
        resolver = make_resolver(settings, tool)

        first = resolver.resolve(DistributionSource.from_url(MAVEN_URL, True))
        second = resolver.resolve(DistributionSource.from_url(MAVEN_URL, True))

        assert len(tool.calls) == 1
        assert first.archive == second.archive
        assert first.digest == second.digest
        assert first.extracted_root == second.extracted_root

    def test_cache_survives_new_resolver_instance(self, settings, download_tool_factory):
        make_resolver(settings, download_tool_factory()).use_distribution(MAVEN_URL, True)
        tool = download_tool_factory()

        make_resolver(settings, tool).use_distribution(MAVEN_URL, True)

        assert tool.calls == []

    def test_caching_on_stages_in_persistent_cache(self, settings, download_tool_factory):
        resolver = make_resolver(settings, download_tool_factory())

        resolver.use_distribution(MAVEN_URL, True)

        archive = resolver.last_result.archive
        assert archive.parent == settings.cache_dir.absolute()
        assert not (settings.ephemeral_dir / archive.name).exists()

    def test_caching_off_stages_in_build_output(self, settings, download_tool_factory):
        resolver = make_resolver(settings, download_tool_factory())

        resolver.use_distribution(MAVEN_URL, False)

        archive = resolver.last_result.archive
        assert archive.parent == settings.ephemeral_dir.absolute()
        assert not (settings.cache_dir / archive.name).exists()

    def test_extraction_dir_is_named_by_digest(self, settings, download_tool_factory):
        resolver = make_resolver(settings, download_tool_factory())

        result = resolver.resolve(DistributionSource.from_url(MAVEN_URL, True))

        assert result.digest == calculate_digest(result.archive)
        assert result.extracted_root.parent == settings.target_root / result.digest

    def test_zip_distribution(self, settings, download_tool_factory, archive_factory, maven_layout):
        archive = archive_factory("apache-maven-3.9.6-bin.zip", maven_layout())
        resolver = make_resolver(settings, download_tool_factory(archive.read_bytes()))

        resolver.use_distribution("https://example.com/apache-maven-3.9.6-bin.zip", False)

        assert resolver.installation.home.name == "apache-maven-3.9.6"

    def test_file_url_distribution(self, settings, archive_factory, maven_layout):
        archive = archive_factory("apache-maven-3.9.6-bin.tar.gz", maven_layout())
        tool = HttpDownloadTool()
        resolver = make_resolver(settings, tool)

        try:
            resolver.use_distribution(archive.as_uri(), False)
        finally:
            tool.shutdown()

        assert resolver.installation.home.name == "apache-maven-3.9.6"


class TestResolveFailures:
    def test_archive_without_directory_leaves_installation_unchanged(
        self, settings, tmp_path, download_tool_factory, archive_factory
    ):
        archive = archive_factory("flat.tar.gz", {"mvn": b"#!/bin/sh\n"})
        resolver = make_resolver(settings, download_tool_factory(archive.read_bytes()))
        resolver.use_installation(tmp_path / "existing-maven")
        before = resolver.installation

        with pytest.raises(ConfigurationError, match="No directory has been extracted"):
            resolver.use_distribution("https://example.com/flat.tar.gz", True)

        assert resolver.installation == before

    def test_archive_with_two_roots_fails(self, settings, download_tool_factory, archive_factory):
        archive = archive_factory("two.tar.gz", {"one/a": b"a", "two/b": b"b"})
        resolver = make_resolver(settings, download_tool_factory(archive.read_bytes()))

        with pytest.raises(ArchiveLayoutError) as exc_info:
            resolver.use_distribution("https://example.com/two.tar.gz", True)

        assert "More than one directory" in str(exc_info.value)
        assert resolver.installation is None

    def test_hash_failure_returns_unresolved_and_keeps_installation(
        self, settings, tmp_path, download_tool_factory
    ):
        resolver = make_resolver(settings, download_tool_factory())
        resolver.use_local_installation()

        with (
            patch("mavendist.download.resolver.calculate_digest", return_value=None),
            patch("mavendist.download.resolver.logger") as mock_logger,
        ):
            result = resolver.resolve(DistributionSource.from_url(MAVEN_URL, True))

        assert result.resolved is False
        assert result.digest is None
        assert result.archive is not None
        assert resolver.installation.is_ambient
        assert resolver.last_result is result
        assert not settings.target_root.exists()
        mock_logger.warning.assert_called_once()

    def test_download_exhaustion_propagates(self, settings, download_tool_factory):
        tool = download_tool_factory(failures=3)
        resolver = make_resolver(settings, tool)

        with pytest.raises(DownloadAttemptsExhaustedError):
            resolver.use_distribution(MAVEN_URL, True)

        assert len(tool.calls) == 3
        assert resolver.installation is None

    def test_invalid_url_fails_before_fetch(self, settings, download_tool_factory):
        tool = download_tool_factory()
        resolver = make_resolver(settings, tool)

        with pytest.raises(InvalidDistributionUrlError):
            resolver.use_distribution("ftp://example.com/maven.tar.gz", True)

        assert tool.calls == []
        assert not settings.cache_dir.exists()

    def test_failed_extraction_is_not_reused(
        self, settings, download_tool_factory, archive_factory, maven_layout
    ):
        archive = archive_factory("apache-maven-3.9.6-bin.zip", maven_layout())
        corrupt = archive.read_bytes().replace(b"echo maven", b"echo XXXXX")
        tool = download_tool_factory(corrupt)
        resolver = make_resolver(settings, tool)
        url = "https://example.com/apache-maven-3.9.6-bin.zip"

        for _ in range(2):
            with pytest.raises(ExtractionError):
                resolver.use_distribution(url, True)

        assert len(tool.calls) == 1
        assert resolver.installation is None
        assert list(settings.target_root.iterdir()) == []

    def test_dot_segment_url_fails_before_fetch(self, settings, download_tool_factory):
        tool = download_tool_factory()
        resolver = make_resolver(settings, tool)

        with pytest.raises(InvalidDistributionUrlError):
            resolver.use_distribution("https://example.com/maven/..", True)

        assert tool.calls == []


class TestVersionSelection:
    def test_use_maven3_version_builds_archive_url(self, settings, download_tool_factory):
        tool = download_tool_factory()
        resolver = make_resolver(settings, tool)

        resolver.use_maven3_version("3.9.6")

        assert tool.calls[0][0] == MAVEN_URL
        assert tool.calls[0][1].parent == settings.cache_dir.absolute()
        assert resolver.last_result.source.use_cache is True

    def test_use_maven3_version_with_custom_template(self, settings, download_tool_factory):
        settings = dataclasses.replace(
            settings, url_template="https://mirror.example.com/maven-%version%.tar.gz"
        )
        tool = download_tool_factory()

        make_resolver(settings, tool).use_maven3_version("3.8.8")

        assert tool.calls[0][0] == "https://mirror.example.com/maven-3.8.8.tar.gz"

    def test_blank_version_fails_before_fetch(self, settings, download_tool_factory):
        tool = download_tool_factory()

        with pytest.raises(InvalidDistributionUrlError):
            make_resolver(settings, tool).use_maven3_version("  ")
        assert tool.calls == []

    def test_use_default_distribution(self, settings, download_tool_factory):
        tool = download_tool_factory()

        make_resolver(settings, tool).use_default_distribution()

        assert tool.calls[0][0].endswith("/3.3.9/binaries/apache-maven-3.3.9-bin.tar.gz")


class TestInstallationSelection:
    def test_use_installation(self, settings, tmp_path, download_tool_factory):
        resolver = make_resolver(settings, download_tool_factory())

        resolver.use_installation(str(tmp_path / "maven"))

        assert resolver.installation.kind is InstallationKind.EXPLICIT
        assert resolver.installation.home == tmp_path / "maven"

    def test_last_selection_wins(self, settings, tmp_path, download_tool_factory):
        resolver = make_resolver(settings, download_tool_factory())

        resolver.use_installation(tmp_path / "maven")
        resolver.use_local_installation()
        assert resolver.installation.is_ambient

        resolver.use_distribution(MAVEN_URL, True)
        assert resolver.installation.kind is InstallationKind.RESOLVED

        resolver.use_installation(tmp_path / "other")
        assert resolver.installation.home == tmp_path / "other"

    def test_selection_methods_return_self_by_default(self, settings, tmp_path, download_tool_factory):
        resolver = make_resolver(settings, download_tool_factory())

        assert resolver.use_local_installation() is resolver
        assert resolver.use_installation(tmp_path) is resolver
        assert resolver.use_distribution(MAVEN_URL, True) is resolver

    def test_selection_methods_return_next_step(self, settings, tmp_path, download_tool_factory):
        next_step = object()
        resolver = make_resolver(settings, download_tool_factory(), next_step=next_step)

        assert resolver.use_local_installation() is next_step
        assert resolver.use_maven3_version("3.9.6") is next_step

    def test_default_fetcher_follows_settings(self, settings):
        settings = dataclasses.replace(settings, max_attempts=5, request_timeout=7)

        resolver = DistributionResolver(settings=settings)

        assert resolver.fetcher.max_attempts == 5
        assert resolver.fetcher.poll_interval == settings.poll_interval
        assert resolver.fetcher.download_tool.request_timeout == 7


class TestConcurrentResolution:
    def test_lock_is_shared_by_all_resolvers(self, settings, download_tool_factory):
        first = make_resolver(settings, download_tool_factory())
        second = make_resolver(settings, download_tool_factory())

        assert first._lock is RESOLUTION_LOCK
        assert second._lock is RESOLUTION_LOCK

    def test_second_resolution_waits_for_first(self, settings, download_tool_factory):
        started = threading.Event()
        release = threading.Event()
        order = []

        def hold_first_download():
            started.set()
            release.wait(5)
            order.append("first")

        first_tool = download_tool_factory(before_write=hold_first_download)
        second_tool = download_tool_factory(before_write=lambda: order.append("second"))
        first = make_resolver(settings, first_tool)
        second = make_resolver(settings, second_tool)
        errors = []

        def run(resolver, url, use_cache):
            try:
                resolver.use_distribution(url, use_cache)
            except Exception as e:
                errors.append(e)

        first_thread = threading.Thread(
            target=run, args=(first, "https://example.com/a/maven.tar.gz", False)
        )
        second_thread = threading.Thread(
            target=run, args=(second, "https://example.com/b/maven-b.tar.gz", False)
        )

        first_thread.start()
        assert started.wait(5)
        second_thread.start()
        second_thread.join(0.3)

        assert second_thread.is_alive()
        assert second_tool.calls == []

        release.set()
        first_thread.join(5)
        second_thread.join(5)

        assert errors == []
        assert order == ["first", "second"]
        assert first.installation.kind is InstallationKind.RESOLVED
        assert second.installation.kind is InstallationKind.RESOLVED
