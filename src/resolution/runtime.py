"""Modules shipped with a language runtime release.

The runtime itself is a distribution on the registry (``perl``), so its
module manifest comes from the same cached release query as any other
release. Installed modules whose version matches the runtime's copy are
explained by the runtime and never need a distribution.
"""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from constants import Constants
from common.errors import SurveyError
from registry.metacpan import MetaCpanClient
from resolution.models import InstalledModule
from versioning.compare import versions_match
from versioning.parser import to_dotted

logger = logging.getLogger(__name__)


class RuntimeCatalog:
    """Lookup of module versions bundled with one runtime release."""

    def __init__(
        self,
        client: MetaCpanClient,
        runtime_version: str,
        distribution: str = Constants.RUNTIME_DISTRIBUTION,
    ):
        self.client = client
        self.runtime_version = runtime_version
        self.distribution = distribution
        self._modules: Optional[Mapping[str, Optional[str]]] = None

    @property
    def release_version(self) -> str:
        return to_dotted(self.runtime_version) or self.runtime_version

    def load(self) -> Mapping[str, Optional[str]]:
        """Fetch the runtime's module manifest (once).

        A missing runtime release or a registry failure leaves the catalog
        empty; failures are recorded on the run context so the exit status
        reflects them.
        """
        if self._modules is not None:
            return self._modules
        try:
            release = self.client.release(self.distribution, self.release_version)
        except SurveyError as exc:
            logger.error("Could not load %s %s module list: %s", self.distribution, self.release_version, exc)
            self.client.context.record_error(f"{self.distribution}-{self.release_version}", exc)
            self._modules = {}
            return self._modules
        if release is None:
            logger.warning(
                "Runtime release %s-%s not found on the registry; no modules will be elided.",
                self.distribution,
                self.release_version,
            )
            self._modules = {}
        else:
            self._modules = dict(release.provided_modules)
            logger.info(
                "Loaded %d modules shipped with %s-%s.",
                len(self._modules),
                self.distribution,
                self.release_version,
            )
        return self._modules

    def ships(self, module: InstalledModule) -> bool:
        """True when ``module`` at its installed version came with the runtime."""
        modules = self.load()
        if module.name not in modules:
            return False
        return versions_match(module.installed_version, modules[module.name])
