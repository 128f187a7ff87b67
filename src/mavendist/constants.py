"""
Constants and configuration values for mavendist.

This module contains the distribution URL template, directory names, retry
settings and logging configuration used throughout the package.
"""

import os

# Distribution locations
MAVEN_3_URL_TEMPLATE = (
    "https://archive.apache.org/dist/maven/maven-3/"
    "%version%/binaries/apache-maven-%version%-bin.tar.gz"
)
VERSION_PLACEHOLDER = "%version%"
DEFAULT_MAVEN_VERSION = "3.3.9"
SUPPORTED_URL_SCHEMES = frozenset({"http", "https", "file"})

# File and directory names
TOOL_NAMESPACE = "mavendist"
CACHE_DIR_NAME = f".{TOOL_NAMESPACE}"
DEFAULT_CACHE_DIR = os.path.join(
    os.path.expanduser("~"), CACHE_DIR_NAME, "resolver", "maven"
)
DEFAULT_BUILD_OUTPUT_DIR = "target"
TARGET_DIR_NAME = "resolver-maven"
DOWNLOADED_DIR_NAME = "downloaded"
BIN_DIR_NAME = "bin"
MAVEN_EXECUTABLE = "mvn"
CONFIG_FILE_NAME = "mavendist.yaml"

# Download retry and polling settings
MAX_DOWNLOAD_ATTEMPTS = 3
DOWNLOAD_POLL_INTERVAL = 0.1  # seconds

# HTTP transfer defaults
DEFAULT_CONNECT_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.3
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 8192
RETRY_STATUS_FORCELIST = (408, 429, 500, 502, 503, 504)

# Hashing
HASH_READ_SIZE = 4096

# Archive formats understood by the default extractor
ZIP_EXTENSION = ".zip"
TAR_EXTENSIONS = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")

# Logging configuration
LOGGER_NAME = "mavendist"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "mavendist.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "MAVENDIST_LOG_LEVEL"
