"""
mavendist Download Subsystem

Core Components:
- interfaces: data structures and abstract collaborators
- fetcher: archive retrieval with retries
- files: content hashing and archive extraction
- resolver: distribution resolution and installation selection
"""

from .fetcher import DotProgress, Fetcher, HttpDownloadTool
from .files import (
    DefaultArchiveExtractor,
    Extractor,
    calculate_digest,
    locate_single_root,
)
from .interfaces import (
    ArchiveExtractor,
    DistributionSource,
    DownloadExecution,
    DownloadTool,
    Installation,
    InstallationKind,
    ResolutionResult,
)
from .resolver import RESOLUTION_LOCK, DistributionResolver, DistributionStage

__all__ = [
    # Interfaces
    "ArchiveExtractor",
    "DistributionSource",
    "DownloadExecution",
    "DownloadTool",
    "Installation",
    "InstallationKind",
    "ResolutionResult",
    # Fetching
    "DotProgress",
    "Fetcher",
    "HttpDownloadTool",
    # Hashing and extraction
    "DefaultArchiveExtractor",
    "Extractor",
    "calculate_digest",
    "locate_single_root",
    # Resolution
    "DistributionResolver",
    "DistributionStage",
    "RESOLUTION_LOCK",
]
