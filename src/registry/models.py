"""Typed records normalized from registry responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

ReleaseKey = Tuple[str, str]


@dataclass(frozen=True)
class ModuleRelease:
    """One release that shipped a file declaring a given module."""

    module: str
    module_version: Optional[str]
    distribution: str
    version: str
    author: str
    release_name: str
    release_date: str

    @property
    def key(self) -> ReleaseKey:
        return (self.distribution, self.version)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "module_version": self.module_version,
            "distribution": self.distribution,
            "version": self.version,
            "author": self.author,
            "release_name": self.release_name,
            "release_date": self.release_date,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModuleRelease":
        return cls(
            module=data["module"],
            module_version=data.get("module_version"),
            distribution=data["distribution"],
            version=data["version"],
            author=data["author"],
            release_name=data["release_name"],
            release_date=data.get("release_date") or "",
        )


@dataclass(frozen=True, eq=False)
class Release:
    """One published version of a distribution and the modules it shipped.

    Identity (equality and hashing) is ``(distribution_name, version)``.
    """

    distribution_name: str
    version: str
    release_date: str
    author: str
    archive_url: str
    provided_modules: Mapping[str, Optional[str]] = field(default_factory=dict)
    name: str = ""
    archive: str = ""
    status: str = ""

    @property
    def key(self) -> ReleaseKey:
        return (self.distribution_name, self.version)

    @property
    def release_name(self) -> str:
        return self.name or f"{self.distribution_name}-{self.version}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Release):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def ships(self, module: str) -> bool:
        return module in self.provided_modules

    def module_version(self, module: str) -> Optional[str]:
        return self.provided_modules.get(module)

    @property
    def author_path(self) -> str:
        """CPAN author directory fragment, e.g. ``A/AU/AUTHOR``."""
        author = self.author.upper()
        return f"{author[:1]}/{author[:2]}/{author}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distribution_name": self.distribution_name,
            "version": self.version,
            "release_date": self.release_date,
            "author": self.author,
            "archive_url": self.archive_url,
            "provided_modules": dict(sorted(self.provided_modules.items())),
            "name": self.name,
            "archive": self.archive,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Release":
        return cls(
            distribution_name=data["distribution_name"],
            version=data["version"],
            release_date=data.get("release_date") or "",
            author=data.get("author") or "",
            archive_url=data.get("archive_url") or "",
            provided_modules=dict(data.get("provided_modules") or {}),
            name=data.get("name") or "",
            archive=data.get("archive") or "",
            status=data.get("status") or "",
        )
