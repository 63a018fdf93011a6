"""Candidate generation: which releases could have installed a module.

For one installed (module, version) pair the generator asks the registry for
every release that ever declared the module, learns from each release's
manifest the exact version it shipped, and ranks the releases:

1. ``Tier.EXACT``: the declared version equals the installed version;
2. ``Tier.PRIOR``: the declared version is the closest one not exceeding the
   installed version;
3. ``Tier.FALLBACK``: everything else, offered only when 1 and 2 are empty.

Within a tier the order is release date, then distribution name, then
release version, so the result is a strict total order.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple, Union

from constants import UnresolvedReason
from common.logging_utils import extra_context, is_debug_enabled
from registry.metacpan import MetaCpanClient
from registry.models import ModuleRelease, Release, ReleaseKey
from resolution.models import CandidateSet, InstalledModule, RankedCandidate, Tier
from resolution.runtime import RuntimeCatalog
from versioning.compare import compare_versions, version_sort_key, versions_match
from versioning.parser import parse_version
from versioning.models import VersionKind

logger = logging.getLogger(__name__)


def rank_candidates(
    installed_version: Optional[str],
    offered: Sequence[Tuple[Release, Optional[str]]],
) -> List[RankedCandidate]:
    """Assign tiers to (release, declared version) pairs and order them.

    Args:
        installed_version: Version found on disk.
        offered: Releases that shipped the module with the version each declared.

    Returns:
        Ranked candidates: exact and prior tiers, or the fallback pool when
        both are empty.
    """
    exact: List[RankedCandidate] = []
    below: List[Tuple[Release, Optional[str]]] = []
    rest: List[Tuple[Release, Optional[str]]] = []
    installed_known = parse_version(installed_version).kind != VersionKind.MISSING

    for release, declared in offered:
        if versions_match(installed_version, declared):
            exact.append(RankedCandidate(release, Tier.EXACT, declared))
        elif (
            installed_known
            and parse_version(declared).kind != VersionKind.MISSING
            and compare_versions(declared, installed_version) < 0
        ):
            below.append((release, declared))
        else:
            rest.append((release, declared))

    prior: List[RankedCandidate] = []
    if below:
        closest = max((declared for _, declared in below), key=version_sort_key)
        for release, declared in below:
            if compare_versions(declared, closest) == 0:
                prior.append(RankedCandidate(release, Tier.PRIOR, declared))
            else:
                rest.append((release, declared))

    ranked = exact + prior
    if not ranked:
        ranked = [RankedCandidate(release, Tier.FALLBACK, declared) for release, declared in rest]
    ranked.sort(key=lambda c: c.rank_key)
    return ranked


class CandidateGenerator:
    """Produces a ranked ``CandidateSet`` for one installed module."""

    def __init__(
        self,
        client: MetaCpanClient,
        ignore_pattern: Union[str, Pattern[str], None] = None,
        runtime: Optional[RuntimeCatalog] = None,
    ):
        self.client = client
        if isinstance(ignore_pattern, str):
            ignore_pattern = re.compile(ignore_pattern)
        self.ignore_pattern = ignore_pattern
        self.runtime = runtime

    def is_ignored(self, module: InstalledModule) -> bool:
        return bool(self.ignore_pattern and self.ignore_pattern.search(module.name))

    def candidates(self, module: InstalledModule) -> CandidateSet:
        """Rank every release that ever shipped ``module``.

        Raises:
            MalformedQuery: the module name cannot be queried.
            RegistryUnavailable: the registry failed after retries.
        """
        if self.is_ignored(module):
            logger.debug("Skipping %s: matches ignore pattern", module.name)
            return CandidateSet(module, skip_reason=UnresolvedReason.IGNORED)
        if self.runtime is not None and self.runtime.ships(module):
            logger.debug("Skipping %s %s: shipped with the runtime", module.name, module.installed_version)
            return CandidateSet(module, skip_reason=UnresolvedReason.RUNTIME_SHIPPED)

        history = self.client.module_history(module.name)
        offered: List[Tuple[Release, Optional[str]]] = []
        seen: Dict[ReleaseKey, ModuleRelease] = {}
        for hit in history:
            if hit.key in seen:
                continue
            seen[hit.key] = hit
            release = self.client.release(hit.distribution, hit.version, hit.author)
            if release is None:
                release = Release(
                    distribution_name=hit.distribution,
                    version=hit.version,
                    release_date=hit.release_date,
                    author=hit.author,
                    archive_url="",
                    provided_modules={hit.module: hit.module_version},
                    name=hit.release_name,
                )
            declared = release.module_version(module.name) if release.ships(module.name) else hit.module_version
            offered.append((release, declared))

        ranked = rank_candidates(module.installed_version, offered)
        if is_debug_enabled(logger):
            logger.debug(
                "Ranked candidates",
                extra=extra_context(
                    event="decision",
                    component="candidates",
                    action="rank",
                    target=module.name,
                    count=len(ranked),
                    outcome=ranked[0].tier.name.lower() if ranked else "none",
                ),
            )
        return CandidateSet(module, candidates=ranked)
