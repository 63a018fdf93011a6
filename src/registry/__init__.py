"""Registry access layer.

- queries.py: validated query types and their cache signatures
- cache.py: persistent (SQLite) and in-memory response caches
- context.py: per-run cache, call counter and error counter
- metacpan.py: MetaCPAN client with single-flight fetches
- models.py: typed release records
"""

from .cache import MemoryResponseCache, SqliteResponseCache, open_cache  # noqa: F401
from .context import RunContext  # noqa: F401
from .metacpan import MetaCpanClient  # noqa: F401
from .models import ModuleRelease, Release  # noqa: F401
from .queries import LatestReleaseQuery, ModuleHistoryQuery, ReleaseQuery  # noqa: F401

__all__ = [
    "MemoryResponseCache",
    "SqliteResponseCache",
    "open_cache",
    "RunContext",
    "MetaCpanClient",
    "ModuleRelease",
    "Release",
    "LatestReleaseQuery",
    "ModuleHistoryQuery",
    "ReleaseQuery",
]
