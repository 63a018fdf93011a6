"""Local mirror builder: materialize resolved releases as a mini CPAN.

Layout under the target directory::

    authors/id/A/AU/AUTHOR/Dist-Name-1.23.tar.gz
    modules/02packages.details.txt.gz
    dist_surveyor/token_packages.txt

Existing index entries and token packages are merged, so several surveys can
feed the same mirror.
"""
from __future__ import annotations

import logging
import os
import posixpath
import urllib.parse
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from constants import Constants
from common.errors import SurveyError
from common.http_client import download_file
from mirror.index import read_index, write_index
from registry.models import Release
from resolution.models import ResolvedRelease

logger = logging.getLogger(__name__)

Downloader = Callable[[str, str], int]


@dataclass
class MirrorReport:
    """What a build did."""
    downloaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    indexed_packages: int = 0


def token_package(release: Release) -> Optional[str]:
    """Pick the module standing in for the whole distribution.

    Prefers the module named after the distribution (``Foo-Bar`` ->
    ``Foo::Bar``), otherwise the alphabetically first module.
    """
    if not release.provided_modules:
        return None
    preferred = release.distribution_name.replace("-", "::")
    if preferred in release.provided_modules:
        return preferred
    return sorted(release.provided_modules)[0]


def archive_name(release: Release) -> str:
    if release.archive:
        return release.archive
    path = urllib.parse.urlsplit(release.archive_url).path
    return posixpath.basename(path)


class MirrorBuilder:
    """Writes resolved releases into a local mirror directory."""

    def __init__(self, target_dir: str, downloader: Downloader = download_file):
        self.target_dir = target_dir
        self._download = downloader

    @property
    def index_path(self) -> str:
        return os.path.join(self.target_dir, Constants.MIRROR_INDEX_PATH)

    @property
    def token_path(self) -> str:
        return os.path.join(self.target_dir, Constants.MIRROR_TOKEN_PATH)

    def archive_relpath(self, release: Release) -> str:
        """Index-style path below ``authors/id``: ``A/AU/AUTHOR/file``."""
        return f"{release.author_path}/{archive_name(release)}"

    def build(self, resolved: Iterable[ResolvedRelease]) -> MirrorReport:
        """Fetch archives and merge the index and token files."""
        report = MirrorReport()
        present: List[Release] = []
        for item in resolved:
            release = item.release
            if not release.archive_url or not archive_name(release):
                logger.warning("No archive URL for %s; not mirrored", release.release_name)
                report.failed.append(release.release_name)
                continue
            relpath = self.archive_relpath(release)
            dest = os.path.join(self.target_dir, "authors", "id", *relpath.split("/"))
            if os.path.exists(dest):
                report.skipped.append(release.release_name)
                present.append(release)
                continue
            try:
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                size = self._download(release.archive_url, dest)
            except (SurveyError, OSError) as exc:
                logger.error("Failed to download %s: %s", release.archive_url, exc)
                report.failed.append(release.release_name)
                continue
            logger.info("Fetched %s (%d bytes)", relpath, size)
            report.downloaded.append(release.release_name)
            present.append(release)

        report.indexed_packages = self._merge_index(present)
        self._merge_tokens(present)
        return report

    def _merge_index(self, releases: List[Release]) -> int:
        entries = read_index(self.index_path)
        for release in releases:
            relpath = self.archive_relpath(release)
            for module, version in sorted(release.provided_modules.items()):
                entries[module] = (version or "undef", relpath)
        write_index(self.index_path, entries)
        return len(entries)

    def _merge_tokens(self, releases: List[Release]) -> None:
        tokens: Dict[str, str] = {}
        if os.path.exists(self.token_path):
            with open(self.token_path, encoding="utf-8") as handle:
                for line in handle:
                    parts = line.split()
                    if len(parts) == 2:
                        tokens[parts[0]] = parts[1]
        for release in releases:
            token = token_package(release)
            if token:
                tokens[release.distribution_name] = token
        os.makedirs(os.path.dirname(self.token_path), exist_ok=True)
        tmp_path = self.token_path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            for dist in sorted(tokens):
                handle.write(f"{dist} {tokens[dist]}\n")
        os.replace(tmp_path, self.token_path)
