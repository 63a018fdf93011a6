"""Registry query types and their cache signatures.

A query is validated and normalized on construction, so an invalid identifier
raises ``MalformedQuery`` before anything reaches the network or the cache.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from common.errors import MalformedQuery
from versioning.parser import is_valid_module_name

QUERY_SCHEMA_VERSION = 1


def _require_token(field_name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise MalformedQuery(field_name, value)
    text = value.strip()
    if not text or any(ch.isspace() for ch in text):
        raise MalformedQuery(field_name, value)
    return text


@dataclass(frozen=True)
class ModuleHistoryQuery:
    """Every release that ever shipped a file declaring ``module``."""

    module: str
    kind: str = field(default="module_history", init=False)

    def __post_init__(self) -> None:
        name = _require_token("module", self.module)
        if not is_valid_module_name(name):
            raise MalformedQuery("module", self.module)
        object.__setattr__(self, "module", name)

    def normalized(self) -> Dict[str, Any]:
        return {"kind": self.kind, "module": self.module, "v": QUERY_SCHEMA_VERSION}

    @property
    def signature(self) -> str:
        return query_signature(self.normalized())

    def __str__(self) -> str:
        return f"module-history:{self.module}"


@dataclass(frozen=True)
class ReleaseQuery:
    """Full metadata plus module manifest for one release."""

    distribution: str
    version: str
    author: Optional[str] = None
    kind: str = field(default="release", init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "distribution", _require_token("distribution", self.distribution))
        object.__setattr__(self, "version", _require_token("version", self.version))
        if self.author is not None:
            object.__setattr__(self, "author", _require_token("author", self.author).upper())

    @property
    def release_name(self) -> str:
        return f"{self.distribution}-{self.version}"

    def normalized(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "distribution": self.distribution,
            "version": self.version,
            "author": self.author,
            "v": QUERY_SCHEMA_VERSION,
        }

    @property
    def signature(self) -> str:
        return query_signature(self.normalized())

    def __str__(self) -> str:
        suffix = f" by {self.author}" if self.author else ""
        return f"release:{self.release_name}{suffix}"


@dataclass(frozen=True)
class LatestReleaseQuery:
    """The newest indexed release of ``distribution`` with its module manifest."""

    distribution: str
    kind: str = field(default="latest_release", init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "distribution", _require_token("distribution", self.distribution))

    def normalized(self) -> Dict[str, Any]:
        return {"kind": self.kind, "distribution": self.distribution, "v": QUERY_SCHEMA_VERSION}

    @property
    def signature(self) -> str:
        return query_signature(self.normalized())

    def __str__(self) -> str:
        return f"latest-release:{self.distribution}"


def query_signature(normalized: Dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of a query."""
    canonical = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
