"""
File Operations for the mavendist Download Subsystem

This module provides content hashing of downloaded archives, safe archive
expansion and the lookup of the single root directory an archive expands to.
"""

import hashlib
import os
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional

from mavendist.constants import HASH_READ_SIZE, TAR_EXTENSIONS, ZIP_EXTENSION
from mavendist.exceptions import ArchiveLayoutError, ExtractionError
from mavendist.log_utils import logger

from .interfaces import ArchiveExtractor, Pathish


def calculate_digest(file_path: Pathish) -> Optional[str]:
    """
    Compute the MD5 hex digest of a file for use as an extraction cache key.

    Streams the file without loading it fully into memory. The digest only
    names a directory, so collision resistance is not a concern.

    Returns:
        Optional[str]: The 32-character lowercase hex digest, or None if the file cannot be read. Read failures are logged as warnings.
    """
    digest = hashlib.md5()
    try:
        f = open(file_path, "rb")
    except OSError as e:
        logger.warning(
            f"A problem occurred while computing the hash of {file_path}: {e}"
        )
        return None

    try:
        for chunk in iter(lambda: f.read(HASH_READ_SIZE), b""):
            digest.update(chunk)
    except OSError as e:
        logger.warning(
            f"A problem occurred while computing the hash of {file_path}: {e}"
        )
        return None
    finally:
        try:
            f.close()
        except OSError as e:
            logger.warning(f"A problem occurred while closing {file_path}: {e}")

    return digest.hexdigest()


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


def _is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith("/") or member_name.startswith("\\"):
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized):
        return False
    if normalized == ".." or normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    if "\x00" in normalized:
        return False
    return True


def safe_extract_path(extract_dir: Pathish, member_name: str) -> str:
    """
    Resolve the absolute extraction path of an archive member.

    Raises:
        ValueError: If the resolved path is outside extract_dir.
    """
    real_extract_dir = os.path.realpath(extract_dir)
    normalized_path = os.path.realpath(os.path.join(real_extract_dir, member_name))

    if not _is_within_base(real_extract_dir, normalized_path):
        raise ValueError(
            f"Unsafe extraction path '{member_name}' is outside base '{extract_dir}'"
        )

    return normalized_path


def _is_tar_archive(name: str) -> bool:
    return name.lower().endswith(TAR_EXTENSIONS)


def _is_zip_archive(name: str) -> bool:
    return name.lower().endswith(ZIP_EXTENSION)


class DefaultArchiveExtractor(ArchiveExtractor):
    """
    Expands ZIP and tar (optionally gzip, bzip2 or xz compressed) archives.

    Extraction is skipped when the target directory already has content, so a
    directory named after the archive's digest is only ever filled once.
    Archives are expanded into a temporary sibling directory that is moved
    into place only after every member was written; a failed extraction
    leaves no target directory behind.
    """

    def extract(self, archive: Pathish, target_dir: Pathish) -> Path:
        archive_path = Path(archive)
        target = Path(target_dir)

        if target.is_dir() and any(target.iterdir()):
            logger.debug(f"{target} already holds extracted content; skipping extraction")
            return target

        if not (_is_zip_archive(archive_path.name) or _is_tar_archive(archive_path.name)):
            raise ExtractionError(
                f"Unsupported archive format: {archive_path.name}",
                archive_path=str(archive_path),
            )

        logger.info(f"Extracting {archive_path.name} to {target}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_dir = Path(
                tempfile.mkdtemp(dir=target.parent, prefix=f"tmp-{target.name}-")
            )
        except OSError as e:
            raise ExtractionError(
                f"Could not create a temporary extraction directory for {target}",
                archive_path=str(archive_path),
                details=str(e),
            ) from e

        try:
            if _is_zip_archive(archive_path.name):
                self._extract_zip(archive_path, temp_dir)
            else:
                self._extract_tar(archive_path, temp_dir)
            if target.is_dir():
                # Only an empty directory can be here; populated ones returned above
                target.rmdir()
            os.replace(temp_dir, target)
        except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
            raise ExtractionError(
                f"Error extracting archive {archive_path}",
                archive_path=str(archive_path),
                details=str(e),
            ) from e
        finally:
            if temp_dir.exists():
                shutil.rmtree(temp_dir, ignore_errors=True)
        return target

    def _extract_zip(self, archive_path: Path, target: Path) -> None:
        with zipfile.ZipFile(archive_path, "r") as zip_ref:
            for file_info in zip_ref.infolist():
                extract_path = self._member_path(archive_path, target, file_info.filename)
                if file_info.is_dir():
                    os.makedirs(extract_path, exist_ok=True)
                    continue

                os.makedirs(os.path.dirname(extract_path), exist_ok=True)
                with (
                    zip_ref.open(file_info) as source,
                    open(extract_path, "wb") as dest,
                ):
                    shutil.copyfileobj(source, dest)

                # Unix permission bits live in the high word of external_attr
                mode = (file_info.external_attr >> 16) & 0o777
                if os.name != "nt" and mode:
                    try:
                        os.chmod(extract_path, mode)
                    except OSError:
                        logger.debug(f"Could not set permissions on {extract_path}")

    def _extract_tar(self, archive_path: Path, target: Path) -> None:
        with tarfile.open(archive_path, "r:*") as tar_ref:
            members: List[tarfile.TarInfo] = []
            for member in tar_ref.getmembers():
                self._member_path(archive_path, target, member.name)
                if member.issym() or member.islnk():
                    link_base = (
                        os.path.dirname(member.name) if member.issym() else ""
                    )
                    self._member_path(
                        archive_path, target, os.path.join(link_base, member.linkname)
                    )
                elif not (member.isfile() or member.isdir()):
                    logger.debug(f"Skipping special archive member {member.name}")
                    continue
                members.append(member)
            # The "data" filter exists on interpreters that ship PEP 706
            extract_kwargs = {"filter": "data"} if hasattr(tarfile, "data_filter") else {}
            tar_ref.extractall(target, members=members, **extract_kwargs)

    @staticmethod
    def _member_path(archive_path: Path, target: Path, member_name: str) -> str:
        if not _is_safe_archive_member(member_name):
            raise ExtractionError(
                f"Unsafe archive member {member_name}",
                archive_path=str(archive_path),
            )
        try:
            return safe_extract_path(target, member_name)
        except ValueError as e:
            raise ExtractionError(
                f"Unsafe archive member {member_name}",
                archive_path=str(archive_path),
                details=str(e),
            ) from e


def locate_single_root(extraction_dir: Pathish) -> Path:
    """
    Return the only top-level directory inside `extraction_dir`.

    Plain files are ignored.

    Raises:
        ArchiveLayoutError: If there is no top-level directory or more than one.
    """
    extraction_dir = Path(extraction_dir)
    directories = sorted(
        (entry for entry in extraction_dir.iterdir() if entry.is_dir()),
        key=lambda entry: entry.name,
    )
    if not directories:
        raise ArchiveLayoutError(
            f"No directory has been extracted from the archive: {extraction_dir}",
            extraction_dir=str(extraction_dir),
        )
    if len(directories) > 1:
        raise ArchiveLayoutError(
            f"More than one directory has been extracted from the archive: {extraction_dir}",
            extraction_dir=str(extraction_dir),
            found=[entry.name for entry in directories],
        )
    return directories[0]


class Extractor:
    """
    Unpacks an archive into a digest-named directory and finds its root.

    The actual expansion is delegated to an ArchiveExtractor.
    """

    def __init__(self, archive_extractor: Optional[ArchiveExtractor] = None) -> None:
        self.archive_extractor = archive_extractor or DefaultArchiveExtractor()

    def extract(self, archive: Pathish, target_dir: Pathish) -> Path:
        """
        Expand `archive` into `target_dir` and return the archive's root directory.

        Raises:
            ExtractionError: If the archive cannot be expanded.
            ArchiveLayoutError: If the archive did not expand to exactly one top-level directory.
        """
        extracted = self.archive_extractor.extract(archive, target_dir)
        return locate_single_root(extracted)
