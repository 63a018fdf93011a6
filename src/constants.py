"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    CONNECTION_ERROR = 2
    FILE_ERROR = 1
    EXIT_WARNINGS = 3


class UnresolvedReason(Enum):
    """Why an installed module ended up without a providing release."""

    IGNORED = "ignored"
    RUNTIME_SHIPPED = "runtime-shipped"
    NO_CANDIDATES = "no-candidates"
    REGISTRY_ERROR = "registry-error"
    MALFORMED = "malformed"
    SUPERSEDED = "superseded"
    INEXACT = "inexact"


class OutputFormats(Enum):
    """Output formats supported by the program."""

    TEXT = "text"
    JSON = "json"
    CSV = "csv"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_METACPAN = "https://fastapi.metacpan.org/v1/"
    DOWNLOAD_URL_CPAN = "https://cpan.metacpan.org/authors/id/"
    RUNTIME_DISTRIBUTION = "perl"
    SUPPORTED_FORMATS = [
        OutputFormats.TEXT.value,
        OutputFormats.JSON.value,
        OutputFormats.CSV.value,
    ]
    DEFAULT_TEMPLATE = "{archive_url}"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_ENV_VAR = "SURVEYOR_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    USER_AGENT = "dist-surveyor/0.4"

    # Registry query tunables
    SEARCH_PAGE_SIZE = 5000
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    RETRYABLE_STATUS = (429, 500, 502, 503, 504)

    # Persistent cache
    CACHE_DIR = os.path.join(os.path.expanduser("~"), ".cache", "dist-surveyor")
    CACHE_FILE = "registry-cache.sqlite3"
    CACHE_SCHEMA_VERSION = 1

    # Survey defaults
    DEFAULT_WORKERS = 8
    MODULE_FILE_SUFFIX = ".pm"

    # Mirror layout
    MIRROR_INDEX_PATH = os.path.join("modules", "02packages.details.txt.gz")
    MIRROR_TOKEN_PATH = os.path.join("dist_surveyor", "token_packages.txt")
