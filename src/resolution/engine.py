"""Resolution engine: choose a minimal set of releases covering the installation.

The engine runs single-threaded over fully materialized candidate sets:

* Greedy pass. Installed modules are visited in sorted order. An unprocessed
  module selects its highest-ranked candidate; every other unprocessed module
  whose installed version matches that release's manifest is covered by it
  too, which is what lets one release explain many modules.
* Reconciliation. When a distribution ended up with several selected
  releases, modules the latest one also ships at the installed version move
  to it. Older selections left empty disappear. A selection is also compared
  with its distribution's latest published release: modules that release no
  longer ships are remnants of an older install. Without the remnants policy,
  superseded selections and remnant modules are dropped, and selections
  covering no module at its exact installed version are dropped as inexact;
  their modules become unresolved.

Each module moves through ``ModuleState``: UNPROCESSED to COVERED, AMBIGUOUS
or UNRESOLVED. Reconciliation may only move a covered module to UNRESOLVED.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from constants import UnresolvedReason
from common.logging_utils import extra_context, is_debug_enabled
from registry.context import RunContext
from registry.models import Release, ReleaseKey
from resolution.models import (
    AmbiguousResolution,
    CandidateSet,
    InstalledModule,
    ModuleState,
    Resolution,
    ResolutionPolicy,
    ResolvedRelease,
    UnresolvedModule,
)
from versioning.compare import version_sort_key, versions_match

logger = logging.getLogger(__name__)

_TERMINAL = (ModuleState.COVERED, ModuleState.AMBIGUOUS, ModuleState.UNRESOLVED)


class InvalidTransition(RuntimeError):
    """A module state change outside the allowed state machine."""


class _Run:
    """Mutable bookkeeping for one ``resolve`` call."""

    def __init__(self, modules: List[InstalledModule]):
        self.modules = modules
        self.state: Dict[InstalledModule, ModuleState] = {m: ModuleState.UNPROCESSED for m in modules}
        self.owner: Dict[InstalledModule, ReleaseKey] = {}
        self.selected: Dict[ReleaseKey, Release] = {}
        self.unresolved: Dict[InstalledModule, UnresolvedModule] = {}
        self.ambiguities: List[AmbiguousResolution] = []
        self.by_name: Dict[str, List[InstalledModule]] = {}
        for module in modules:
            self.by_name.setdefault(module.name, []).append(module)

    def transition(self, module: InstalledModule, new_state: ModuleState) -> None:
        current = self.state[module]
        allowed = (
            current == ModuleState.UNPROCESSED and new_state in _TERMINAL
        ) or (
            current in (ModuleState.COVERED, ModuleState.AMBIGUOUS)
            and new_state == ModuleState.UNRESOLVED
        )
        if not allowed:
            raise InvalidTransition(f"{module.name}: {current.value} -> {new_state.value}")
        self.state[module] = new_state

    def cover(self, module: InstalledModule, release: Release, state: ModuleState = ModuleState.COVERED) -> None:
        self.selected.setdefault(release.key, release)
        self.transition(module, state)
        self.owner[module] = release.key

    def unresolve(self, module: InstalledModule, reason: UnresolvedReason, detail: str = "") -> None:
        self.transition(module, ModuleState.UNRESOLVED)
        self.owner.pop(module, None)
        self.unresolved[module] = UnresolvedModule(
            name=module.name,
            version=module.installed_version,
            reason=reason,
            detail=detail,
            source_path=module.source_path,
        )

    def owned_by(self, key: ReleaseKey) -> List[InstalledModule]:
        return sorted((m for m, k in self.owner.items() if k == key), key=lambda m: m.sort_key)


class ResolutionEngine:
    """Greedy set cover with preference ordering and remnant reconciliation."""

    def __init__(self, context: Optional[RunContext] = None):
        self.context = context

    def resolve(
        self,
        installed_modules: Iterable[InstalledModule],
        candidate_sets: Mapping[InstalledModule, CandidateSet],
        policy: ResolutionPolicy = ResolutionPolicy(),
        latest_releases: Optional[Mapping[str, Release]] = None,
    ) -> Resolution:
        """Select releases for ``installed_modules``.

        Args:
            installed_modules: The surveyed modules.
            candidate_sets: Ranked candidates per module (missing entries mean
                no candidates).
            policy: Reconciliation policy.
            latest_releases: Latest published release per distribution name.
                Distributions missing here are only reconciled against the
                releases selected in this run.

        Returns:
            ``Resolution(resolved, unresolved, ambiguities)``; every installed
            module is either covered by exactly one resolved release or listed
            exactly once as unresolved.
        """
        modules = sorted(set(installed_modules), key=lambda m: m.sort_key)
        run = _Run(modules)

        # Skipped modules are settled first so no release can claim them.
        for module in modules:
            cset = candidate_sets.get(module)
            if cset is not None and cset.skip_reason is not None:
                run.unresolve(module, cset.skip_reason)
            if cset is not None and cset.error is not None and self.context is not None:
                self.context.record_error(module.name, cset.error)

        for module in modules:
            if run.state[module] != ModuleState.UNPROCESSED:
                continue
            self._process(run, module, candidate_sets.get(module))

        self._reconcile(run, policy, latest_releases or {})
        return self._emit(run)

    # ------------------------------------------------------------------ #
    def _process(self, run: _Run, module: InstalledModule, cset: Optional[CandidateSet]) -> None:
        if cset is not None and cset.error is not None:
            run.unresolve(module, cset.failure_reason, str(cset.error))
            return
        if cset is None or not cset.candidates:
            run.unresolve(module, UnresolvedReason.NO_CANDIDATES)
            return

        top = cset.candidates[0]
        release = top.release
        group = cset.top_group()
        distributions = sorted({c.release.distribution_name for c in group})
        if len(distributions) > 1:
            seen = []
            for c in group:
                if c.release.release_name not in seen:
                    seen.append(c.release.release_name)
            run.ambiguities.append(
                AmbiguousResolution(
                    module=module.name,
                    version=module.installed_version,
                    chosen=release.release_name,
                    candidates=tuple(seen),
                )
            )
            logger.warning(
                "Ambiguous provider for %s %s: %s; using %s",
                module.name,
                module.installed_version,
                ", ".join(distributions),
                release.release_name,
            )
            run.cover(module, release, ModuleState.AMBIGUOUS)
        else:
            run.cover(module, release)

        for name in sorted(release.provided_modules):
            declared = release.provided_modules[name]
            for other in run.by_name.get(name, []):
                if run.state[other] == ModuleState.UNPROCESSED and versions_match(other.installed_version, declared):
                    run.cover(other, release)

        if is_debug_enabled(logger):
            logger.debug(
                "Selected release",
                extra=extra_context(
                    event="decision",
                    component="engine",
                    action="select",
                    target=module.name,
                    outcome=release.release_name,
                    tier=top.tier.name.lower(),
                ),
            )

    @staticmethod
    def _exact_for(release: Release, module: InstalledModule) -> bool:
        return release.ships(module.name) and versions_match(
            module.installed_version, release.module_version(module.name)
        )

    @staticmethod
    def _newer(release: Release, than: Release) -> bool:
        if release.key == than.key:
            return False
        return (release.release_date, version_sort_key(release.version)) > (
            than.release_date,
            version_sort_key(than.version),
        )

    def _drop_remnants(self, run: _Run, policy: ResolutionPolicy, latest_releases: Mapping[str, Release]) -> None:
        for key in sorted(run.selected):
            release = run.selected[key]
            latest = latest_releases.get(release.distribution_name)
            if latest is None or not self._newer(latest, release):
                continue
            remnants = [m for m in run.owned_by(key) if not latest.ships(m.name)]
            if not remnants:
                continue
            names = ", ".join(m.name for m in remnants)
            if policy.remnants:
                logger.info("Keeping %s for %s, no longer shipped by %s", release.release_name, names, latest.release_name)
                continue
            logger.info(
                "Dropping %s from %s: no longer shipped by %s (use remnants policy to keep it)",
                names,
                release.release_name,
                latest.release_name,
            )
            for module in remnants:
                run.unresolve(module, UnresolvedReason.SUPERSEDED, f"no longer shipped by {latest.release_name}")
            if not run.owned_by(key):
                del run.selected[key]

    def _reconcile(self, run: _Run, policy: ResolutionPolicy, latest_releases: Mapping[str, Release]) -> None:
        by_dist: Dict[str, List[ReleaseKey]] = {}
        for key in run.selected:
            by_dist.setdefault(key[0], []).append(key)

        for dist in sorted(by_dist):
            keys = by_dist[dist]
            if len(keys) < 2:
                continue
            ordered = sorted(
                keys,
                key=lambda k: (run.selected[k].release_date, version_sort_key(k[1]), k[1]),
            )
            latest_key = ordered[-1]
            latest = run.selected[latest_key]
            for key in ordered[:-1]:
                for module in run.owned_by(key):
                    if self._exact_for(latest, module):
                        run.owner[module] = latest_key
                remaining = run.owned_by(key)
                if not remaining:
                    del run.selected[key]
                elif not policy.remnants:
                    logger.info(
                        "Dropping %s: superseded by %s (use remnants policy to keep it)",
                        run.selected[key].release_name,
                        latest.release_name,
                    )
                    for module in remaining:
                        run.unresolve(module, UnresolvedReason.SUPERSEDED, f"superseded by {latest.release_name}")
                    del run.selected[key]

        self._drop_remnants(run, policy, latest_releases)
        if policy.remnants:
            return
        for key in list(run.selected):
            release = run.selected[key]
            owned = run.owned_by(key)
            if owned and any(self._exact_for(release, m) for m in owned):
                continue
            for module in owned:
                run.unresolve(module, UnresolvedReason.INEXACT, f"closest release {release.release_name}")
            del run.selected[key]

    @staticmethod
    def _emit(run: _Run) -> Resolution:
        resolved = []
        for key, release in run.selected.items():
            names = sorted({m.name for m in run.owned_by(key)})
            resolved.append(ResolvedRelease(release=release, covered_modules=names))
        resolved.sort(
            key=lambda r: (r.release.distribution_name, r.release.release_date, version_sort_key(r.version), r.version)
        )
        unresolved = sorted(run.unresolved.values(), key=lambda u: (u.name, u.version or "", u.source_path))
        ambiguities = sorted(run.ambiguities, key=lambda a: (a.module, a.version or ""))
        return Resolution(resolved, unresolved, ambiguities)
