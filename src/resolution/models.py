"""Data models for candidate generation and release resolution."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from constants import Constants, UnresolvedReason
from common.errors import MalformedQuery
from registry.models import Release
from versioning.compare import compare_versions, version_sort_key


@dataclass(frozen=True)
class InstalledModule:
    """A module found in the surveyed tree (immutable for the run)."""
    name: str
    installed_version: Optional[str]
    source_path: str = ""

    @property
    def sort_key(self) -> Tuple[str, str, str]:
        return (self.name, self.installed_version or "", self.source_path)


class Tier(IntEnum):
    """Plausibility tier of a candidate release for one installed module."""
    EXACT = 1      # declared version equals the installed version
    PRIOR = 2      # closest declared version below the installed one
    FALLBACK = 3   # shipped the module at some other version


@dataclass(frozen=True)
class RankedCandidate:
    """A release proposed for a module, with the version it declared."""
    release: Release
    tier: Tier
    declared_version: Optional[str]

    @property
    def rank_key(self) -> Tuple[Any, ...]:
        return (
            int(self.tier),
            self.release.release_date,
            self.release.distribution_name,
            version_sort_key(self.release.version),
        )


@dataclass
class CandidateSet:
    """Ranked candidates for one installed module, or why there are none."""
    module: InstalledModule
    candidates: List[RankedCandidate] = field(default_factory=list)
    skip_reason: Optional[UnresolvedReason] = None
    error: Optional[BaseException] = None

    @property
    def failure_reason(self) -> Optional[UnresolvedReason]:
        if self.error is None:
            return None
        if isinstance(self.error, MalformedQuery):
            return UnresolvedReason.MALFORMED
        return UnresolvedReason.REGISTRY_ERROR

    def top_group(self) -> List[RankedCandidate]:
        """Candidates sharing the top candidate's tier and declared version."""
        if not self.candidates:
            return []
        top = self.candidates[0]
        return [
            c for c in self.candidates
            if c.tier == top.tier
            and compare_versions(c.declared_version, top.declared_version) == 0
        ]


class ModuleState(Enum):
    """Per-module resolution state; COVERED, AMBIGUOUS and UNRESOLVED are terminal."""
    UNPROCESSED = "unprocessed"
    COVERED = "covered"
    AMBIGUOUS = "ambiguous"
    UNRESOLVED = "unresolved"


class _FieldAccess(ABC):
    """Field extraction by name for output templates."""

    @abstractmethod
    def fields(self) -> Dict[str, Any]:
        """Template fields of this record, keyed by name."""


@dataclass
class ResolvedRelease(_FieldAccess):
    """A release selected to explain one or more installed modules."""
    release: Release
    covered_modules: List[str] = field(default_factory=list)

    @property
    def distribution_name(self) -> str:
        return self.release.distribution_name

    @property
    def version(self) -> str:
        return self.release.version

    @property
    def archive_url(self) -> str:
        return self.release.archive_url

    @property
    def author(self) -> str:
        return self.release.author

    def fields(self) -> Dict[str, Any]:
        return {
            "distribution_name": self.release.distribution_name,
            "version": self.release.version,
            "release": self.release.release_name,
            "release_date": self.release.release_date,
            "author": self.release.author,
            "archive_url": self.release.archive_url,
            "archive": self.release.archive,
            "status": self.release.status,
            "covered_modules": " ".join(self.covered_modules),
            "covered_count": len(self.covered_modules),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.fields()
        data["covered_modules"] = list(self.covered_modules)
        return data


@dataclass(frozen=True)
class UnresolvedModule(_FieldAccess):
    """An installed module with no selected provider, and why."""
    name: str
    version: Optional[str]
    reason: UnresolvedReason
    detail: str = ""
    source_path: str = ""

    def fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version or "",
            "reason": self.reason.value,
            "detail": self.detail,
            "source_path": self.source_path,
        }

    def to_dict(self) -> Dict[str, Any]:
        return self.fields()


@dataclass(frozen=True)
class AmbiguousResolution:
    """Top candidates for a module came from more than one distribution."""
    module: str
    version: Optional[str]
    chosen: str
    candidates: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "version": self.version or "",
            "chosen": self.chosen,
            "candidates": list(self.candidates),
        }


@dataclass(frozen=True)
class ResolutionPolicy:
    """Knobs for the reconciliation pass."""
    remnants: bool = False


class Resolution(NamedTuple):
    """Engine output: unpacks as (resolved, unresolved, ambiguities)."""
    resolved: List[ResolvedRelease]
    unresolved: List[UnresolvedModule]
    ambiguities: List[AmbiguousResolution]


@dataclass
class SurveyConfig:
    """Effective configuration for one survey run."""
    ignore_pattern: Optional[str] = None
    match_pattern: Optional[str] = None
    runtime_version: Optional[str] = None
    remnants_policy: bool = False
    use_persistent_cache: bool = True
    cache_path: Optional[str] = None
    workers: int = Constants.DEFAULT_WORKERS
    registry_url: str = Constants.REGISTRY_URL_METACPAN
    download_url: str = Constants.DOWNLOAD_URL_CPAN


@dataclass
class SurveyResult:
    """Everything a run produced, for output and exit status."""
    resolved: List[ResolvedRelease]
    unresolved: List[UnresolvedModule]
    ambiguities: List[AmbiguousResolution]
    registry_calls: int = 0
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": [r.to_dict() for r in self.resolved],
            "unresolved": [u.to_dict() for u in self.unresolved],
            "ambiguous": [a.to_dict() for a in self.ambiguities],
            "registry_calls": self.registry_calls,
            "error_count": self.error_count,
        }
