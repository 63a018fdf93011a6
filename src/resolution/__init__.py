"""Distribution resolution: candidate generation, greedy cover, orchestration."""

from .candidates import CandidateGenerator, rank_candidates  # noqa: F401
from .engine import ResolutionEngine  # noqa: F401
from .models import (  # noqa: F401
    AmbiguousResolution,
    CandidateSet,
    InstalledModule,
    ResolutionPolicy,
    ResolvedRelease,
    SurveyConfig,
    SurveyResult,
    Tier,
    UnresolvedModule,
)
from .runtime import RuntimeCatalog  # noqa: F401
from .service import SurveyService  # noqa: F401

__all__ = [
    "CandidateGenerator",
    "rank_candidates",
    "ResolutionEngine",
    "AmbiguousResolution",
    "CandidateSet",
    "InstalledModule",
    "ResolutionPolicy",
    "ResolvedRelease",
    "SurveyConfig",
    "SurveyResult",
    "Tier",
    "UnresolvedModule",
    "RuntimeCatalog",
    "SurveyService",
]
