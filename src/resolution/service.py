"""Survey orchestration: parallel candidate lookups, then sequential resolution."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from common.errors import SurveyError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from registry.cache import open_cache
from registry.context import RunContext
from registry.metacpan import MetaCpanClient
from registry.models import Release
from resolution.candidates import CandidateGenerator
from resolution.engine import ResolutionEngine
from resolution.models import (
    CandidateSet,
    InstalledModule,
    ResolutionPolicy,
    SurveyConfig,
    SurveyResult,
)
from resolution.runtime import RuntimeCatalog

logger = logging.getLogger(__name__)


class SurveyService:
    """Runs one survey against the registry with an explicit run context."""

    def __init__(
        self,
        config: SurveyConfig,
        context: Optional[RunContext] = None,
        client: Optional[MetaCpanClient] = None,
    ):
        """Wire the client, cache and generator for ``config``.

        Args:
            config: Effective survey configuration.
            context: Run context; a fresh one (with the configured cache) is
                created when omitted.
            client: Registry client; built from ``config`` when omitted.
        """
        self.config = config
        if context is None:
            context = RunContext(open_cache(config.use_persistent_cache, config.cache_path))
        self.context = context
        self.client = client or MetaCpanClient(
            context, base_url=config.registry_url, download_url=config.download_url
        )
        self._match = re.compile(config.match_pattern) if config.match_pattern else None
        self.runtime = (
            RuntimeCatalog(self.client, config.runtime_version) if config.runtime_version else None
        )
        self.generator = CandidateGenerator(
            self.client, ignore_pattern=config.ignore_pattern, runtime=self.runtime
        )

    def select_modules(self, modules: Iterable[InstalledModule]) -> List[InstalledModule]:
        """Apply the include pattern; modules outside it are not part of the run."""
        selected = [m for m in modules if self._match is None or self._match.search(m.name)]
        return sorted(set(selected), key=lambda m: m.sort_key)

    def _lookup(self, module: InstalledModule) -> CandidateSet:
        try:
            return self.generator.candidates(module)
        except SurveyError as exc:
            logger.error("Candidate lookup failed for %s: %s", module.name, exc)
            return CandidateSet(module, error=exc)

    def collect_candidates(self, modules: List[InstalledModule]) -> Dict[InstalledModule, CandidateSet]:
        """Generate candidate sets for all modules on a worker pool."""
        if self.runtime is not None:
            self.runtime.load()
        workers = max(1, int(self.config.workers or 1))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="survey") as pool:
            results = list(pool.map(self._lookup, modules))
        return {cset.module: cset for cset in results}

    def _latest(self, distribution: str) -> Tuple[str, Optional[Release]]:
        try:
            return distribution, self.client.latest_release(distribution)
        except SurveyError as exc:
            logger.error("Latest release lookup failed for %s: %s", distribution, exc)
            self.context.record_error(distribution, exc)
            return distribution, None

    def collect_latest_releases(self, candidate_sets: Mapping[InstalledModule, CandidateSet]) -> Dict[str, Release]:
        """Latest published release for each distribution the engine may select.

        Only a module's top candidate is ever selected, so those are the
        distributions looked up.
        """
        distributions = sorted({
            cset.candidates[0].release.distribution_name
            for cset in candidate_sets.values()
            if cset.candidates and cset.error is None and cset.skip_reason is None
        })
        workers = max(1, int(self.config.workers or 1))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="survey") as pool:
            results = list(pool.map(self._latest, distributions))
        return {dist: release for dist, release in results if release is not None}

    def survey(self, modules: Iterable[InstalledModule]) -> SurveyResult:
        """Resolve ``modules`` to releases.

        Per-module failures never abort the run; they surface as unresolved
        modules and in ``SurveyResult.error_count``.
        """
        selected = self.select_modules(modules)
        logger.info("Surveying %d installed modules.", len(selected))
        with Timer() as t:
            candidate_sets = self.collect_candidates(selected)
            latest_releases = self.collect_latest_releases(candidate_sets)
        if is_debug_enabled(logger):
            logger.debug(
                "Candidate collection finished",
                extra=extra_context(
                    event="function_exit",
                    component="service",
                    action="collect_candidates",
                    duration_ms=t.duration_ms(),
                    count=len(candidate_sets),
                ),
            )

        policy = ResolutionPolicy(remnants=self.config.remnants_policy)
        resolved, unresolved, ambiguities = ResolutionEngine(self.context).resolve(
            selected, candidate_sets, policy, latest_releases
        )
        result = SurveyResult(
            resolved=resolved,
            unresolved=unresolved,
            ambiguities=ambiguities,
            registry_calls=self.context.registry_calls,
            error_count=self.context.error_count,
        )
        logger.info(
            "Resolved %d releases; %d modules unresolved; %d ambiguous; %d registry calls.",
            len(resolved),
            len(unresolved),
            len(ambiguities),
            result.registry_calls,
        )
        return result

    def close(self) -> None:
        self.context.close()
