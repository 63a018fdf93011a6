"""MetaCPAN registry client: module history and release manifests.

Every query goes through the same path:

1. validate and normalize the query (``registry.queries``), computing its
   signature;
2. return the cached payload when one exists;
3. otherwise fetch under single-flight for that signature, write the cache
   entry, then return the payload.

Payloads are stored already normalized, so a warm cache never needs the raw
Elasticsearch response shape again. A cached payload that decodes as JSON but
no longer has the normalized shape is discarded and fetched again.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from constants import Constants
from common.errors import CacheCorruption
from common.http_client import post_json
from common.logging_utils import extra_context, is_debug_enabled, Timer
from registry.context import RunContext
from registry.models import ModuleRelease, Release
from registry.queries import LatestReleaseQuery, ModuleHistoryQuery, ReleaseQuery
from versioning.parser import distribution_from_release

logger = logging.getLogger(__name__)

Query = Union[ModuleHistoryQuery, ReleaseQuery, LatestReleaseQuery]
Transport = Callable[..., Optional[Any]]

FILE_SEARCH = "file/_search"
RELEASE_SEARCH = "release/_search"

_RELEASE_SOURCE = [
    "name", "distribution", "version", "author", "date",
    "download_url", "archive", "status",
]


class _Flight:
    """One in-progress fetch other workers can wait on."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.payload: Any = None
        self.error: Optional[BaseException] = None


def _total(hits: Dict[str, Any]) -> Optional[int]:
    # Elasticsearch reports either a bare count or {"value": n, "relation": ...}.
    total = hits.get("total")
    if isinstance(total, dict):
        total = total.get("value")
    if isinstance(total, bool) or not isinstance(total, int):
        return None
    return total


def _hits(data: Optional[Any], query: Optional[Query] = None) -> List[Dict[str, Any]]:
    """Extract ``_source`` documents from a search reply (empty on 404).

    Logs a warning when the reply says more documents matched than it
    returned, since anything past the page size is silently missing.
    """
    if not isinstance(data, dict):
        return []
    hits = data.get("hits", {})
    if not isinstance(hits, dict):
        return []
    raw = hits.get("hits", []) or []
    docs = []
    for hit in raw:
        source = hit.get("_source") if isinstance(hit, dict) else None
        if isinstance(source, dict):
            docs.append(source)
    total = _total(hits)
    if total is not None and total > len(raw):
        logger.warning(
            "Search for %s matched %d documents but returned %d; results are truncated",
            query if query is not None else "registry data",
            total,
            len(raw),
        )
    return docs


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _version_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def decode_payload(query: Query, payload: Any) -> Any:
    """Turn a normalized payload into model objects.

    Returns a list of ``ModuleRelease`` for a module history query, and a
    ``Release`` or None for the release queries.

    Raises:
        CacheCorruption: when ``payload`` does not have the normalized shape.
    """
    try:
        if isinstance(query, ModuleHistoryQuery):
            return [ModuleRelease.from_dict(item) for item in payload["releases"]]
        data = payload["release"]
        return Release.from_dict(data) if data is not None else None
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise CacheCorruption(query.signature, f"unexpected payload shape: {exc!r}") from exc


class MetaCpanClient:
    """Read-only MetaCPAN API client with a signature-keyed response cache."""

    def __init__(
        self,
        context: RunContext,
        base_url: str = Constants.REGISTRY_URL_METACPAN,
        download_url: str = Constants.DOWNLOAD_URL_CPAN,
        transport: Transport = post_json,
    ):
        """Initialize the client.

        Args:
            context: Run context supplying the cache and call counter.
            base_url: API root, e.g. ``https://fastapi.metacpan.org/v1/``.
            download_url: Root of the ``authors/id`` tree for archive URLs.
            transport: Callable ``(url, body, *, context) -> payload`` used for
                each network request. Defaults to ``common.http_client.post_json``.
        """
        self.context = context
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.download_url = download_url if download_url.endswith("/") else download_url + "/"
        self._transport = transport
        self._flights: Dict[str, _Flight] = {}
        self._flights_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Generic fetch
    # ------------------------------------------------------------------ #
    def fetch(self, query: Query) -> Any:
        """Return the normalized payload for ``query``, from cache when possible."""
        signature = query.signature
        cached = self._cache_lookup(signature)
        if cached is not None:
            return cached.payload
        return self._single_flight(query, signature)

    def fetch_decoded(self, query: Query) -> Any:
        """Like ``fetch`` but returns model objects (see ``decode_payload``).

        A payload with the wrong shape is dropped from the cache and fetched
        once more from the registry.
        """
        try:
            return decode_payload(query, self.fetch(query))
        except CacheCorruption as exc:
            logger.warning("Discarded malformed cache entry for %s; re-fetching: %s", query, exc)
            self.context.cache.discard(query.signature)
        return decode_payload(query, self._single_flight(query, query.signature))

    def _cache_lookup(self, signature: str):
        try:
            return self.context.cache.get(signature)
        except CacheCorruption as exc:
            logger.warning("Discarded corrupt cache entry; re-fetching: %s", exc)
            return None

    def _single_flight(self, query: Query, signature: str) -> Any:
        with self._flights_lock:
            flight = self._flights.get(signature)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[signature] = flight

        if not leader:
            if is_debug_enabled(logger):
                logger.debug(
                    "Waiting on in-flight fetch",
                    extra=extra_context(
                        event="single_flight_wait", component="metacpan", target=str(query)
                    ),
                )
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.payload

        try:
            # A previous leader may have finished between our miss and registration.
            cached = self._cache_lookup(signature)
            if cached is not None:
                flight.payload = cached.payload
            else:
                payload = self._fetch_uncached(query)
                self.context.cache.put(signature, payload)
                flight.payload = payload
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._flights_lock:
                self._flights.pop(signature, None)
            flight.done.set()
        return flight.payload

    def _request(self, path: str, body: Dict[str, Any], query: Query) -> Optional[Any]:
        call_no = self.context.count_registry_call()
        url = self.base_url + path
        with Timer() as t:
            data = self._transport(url, body, context="metacpan")
        if is_debug_enabled(logger):
            logger.debug(
                "Registry call",
                extra=extra_context(
                    event="registry_call",
                    component="metacpan",
                    action=path,
                    target=str(query),
                    duration_ms=t.duration_ms(),
                    count=call_no,
                ),
            )
        return data

    def _fetch_uncached(self, query: Query) -> Dict[str, Any]:
        if isinstance(query, ModuleHistoryQuery):
            return self._fetch_module_history(query)
        if isinstance(query, LatestReleaseQuery):
            return self._fetch_latest_release(query)
        return self._fetch_release(query)

    # ------------------------------------------------------------------ #
    # Module history
    # ------------------------------------------------------------------ #
    def _fetch_module_history(self, query: ModuleHistoryQuery) -> Dict[str, Any]:
        body = {
            "query": {"bool": {"filter": [{"term": {"module.name": query.module}}]}},
            "_source": ["release", "distribution", "author", "date", "module", "path"],
            "size": Constants.SEARCH_PAGE_SIZE,
        }
        seen = {}
        for doc in _hits(self._request(FILE_SEARCH, body, query), query):
            release_name = doc.get("release")
            author = doc.get("author")
            if not release_name or not author:
                continue
            module_version = None
            for entry in _as_list(doc.get("module")):
                if isinstance(entry, dict) and entry.get("name") == query.module:
                    module_version = _version_text(entry.get("version"))
                    break
            distribution, version = distribution_from_release(release_name, doc.get("distribution"))
            if not version:
                continue
            record = ModuleRelease(
                module=query.module,
                module_version=module_version,
                distribution=distribution,
                version=version,
                author=str(author).upper(),
                release_name=release_name,
                release_date=str(doc.get("date") or ""),
            )
            ident = (record.author, record.release_name)
            current = seen.get(ident)
            if current is None or (current.module_version is None and module_version is not None):
                seen[ident] = record
        ordered = sorted(seen.values(), key=lambda r: (r.release_date, r.distribution, r.version, r.author))
        return {"releases": [r.to_dict() for r in ordered]}

    # ------------------------------------------------------------------ #
    # Release manifest
    # ------------------------------------------------------------------ #
    def _fetch_release(self, query: ReleaseQuery) -> Dict[str, Any]:
        filters: List[Dict[str, Any]] = [{"term": {"name": query.release_name}}]
        if query.author:
            filters.append({"term": {"author": query.author}})
        body = {
            "query": {"bool": {"filter": filters}},
            "_source": _RELEASE_SOURCE,
            "size": 20,
        }
        docs = [d for d in _hits(self._request(RELEASE_SEARCH, body, query), query) if d.get("author")]
        if not docs:
            return {"release": None}
        docs.sort(key=lambda d: (str(d.get("date") or ""), str(d.get("author"))))
        # Identity follows the release name, matching module-history records.
        release = self._build_release(docs[0], query.distribution, query.version, query)
        return {"release": release.to_dict()}

    def _fetch_latest_release(self, query: LatestReleaseQuery) -> Dict[str, Any]:
        body = {
            "query": {
                "bool": {
                    "filter": [
                        {"term": {"distribution": query.distribution}},
                        {"term": {"status": "latest"}},
                    ]
                }
            },
            "_source": _RELEASE_SOURCE,
            "sort": [{"date": "desc"}],
            "size": 1,
        }
        data = self._request(RELEASE_SEARCH, body, query)
        docs = [d for d in _hits(data) if d.get("author") and d.get("name")]
        if not docs:
            return {"release": None}
        doc = docs[0]
        distribution, version = distribution_from_release(
            str(doc["name"]), doc.get("distribution") or query.distribution
        )
        if not version:
            version = _version_text(doc.get("version")) or ""
        if not version:
            return {"release": None}
        release = self._build_release(doc, distribution, version, query)
        return {"release": release.to_dict()}

    def _build_release(self, doc: Dict[str, Any], distribution: str, version: str, query: Query) -> Release:
        author = str(doc["author"]).upper()
        name = doc.get("name") or f"{distribution}-{version}"

        file_body = {
            "query": {
                "bool": {
                    "filter": [
                        {"term": {"release": name}},
                        {"term": {"author": author}},
                        {"exists": {"field": "module.name"}},
                    ]
                }
            },
            "_source": ["module", "path"],
            "size": Constants.SEARCH_PAGE_SIZE,
        }
        provided: Dict[str, Optional[str]] = {}
        files = _hits(self._request(FILE_SEARCH, file_body, query), query)
        for file_doc in sorted(files, key=lambda d: str(d.get("path") or "")):
            for entry in _as_list(file_doc.get("module")):
                if not isinstance(entry, dict) or not entry.get("name"):
                    continue
                module_name = entry["name"]
                module_version = _version_text(entry.get("version"))
                if module_name not in provided or (provided[module_name] is None and module_version):
                    provided[module_name] = module_version

        archive = doc.get("archive") or ""
        archive_url = doc.get("download_url") or ""
        if not archive_url and archive:
            archive_url = f"{self.download_url}{author[:1]}/{author[:2]}/{author}/{archive}"
        return Release(
            distribution_name=distribution,
            version=version,
            release_date=str(doc.get("date") or ""),
            author=author,
            archive_url=archive_url,
            provided_modules=provided,
            name=name,
            archive=archive,
            status=str(doc.get("status") or ""),
        )

    # ------------------------------------------------------------------ #
    # Typed helpers
    # ------------------------------------------------------------------ #
    def module_history(self, module: str) -> List[ModuleRelease]:
        """Every release that ever shipped ``module``, oldest first."""
        return self.fetch_decoded(ModuleHistoryQuery(module))

    def release(self, distribution: str, version: str, author: Optional[str] = None) -> Optional[Release]:
        """Full metadata for one release, or None if the registry has no record."""
        return self.fetch_decoded(ReleaseQuery(distribution, version, author))

    def latest_release(self, distribution: str) -> Optional[Release]:
        """The release MetaCPAN currently marks as latest for ``distribution``."""
        return self.fetch_decoded(LatestReleaseQuery(distribution))
