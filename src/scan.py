"""Installed-module discovery: library tree scanning and module list files."""
from __future__ import annotations

import logging
import os
import re
import sys
from typing import Dict, Iterable, List, Optional

from constants import Constants, ExitCodes
from common.logging_utils import extra_context, is_debug_enabled
from resolution.models import InstalledModule
from versioning.parser import is_valid_module_name, tokenize_module_token

logger = logging.getLogger(__name__)

# $VERSION assignments as ExtUtils::MakeMaker recognizes them.
_VERSION_ASSIGN_RE = re.compile(r"""([\$*])(([\w:']*)\bVERSION)\b.*(?<![!><=])=(?![=>])""")
_VERSION_VALUE_RE = re.compile(
    r"""=\s*(?:version\s*->\s*(?:declare|parse|new)\s*\(\s*|qv\s*\(\s*)?['"]?(v?[\d._]+)['"]?"""
)
_PACKAGE_VERSION_RE = re.compile(r"""^\s*package\s+([\w:']+)\s+(v?[\d._]+)\s*[;{]""")
_POD_START_RE = re.compile(r"^=[a-zA-Z]")
_POD_END_RE = re.compile(r"^=cut\b")


def module_name_from_path(rel_path: str) -> Optional[str]:
    """Map ``Foo/Bar.pm`` to ``Foo::Bar``.

    Leading directories that cannot be part of a package name (architecture
    directories such as ``x86_64-linux``, version directories such as
    ``5.36.0``) are dropped. Returns None for paths under ``auto/``.
    """
    if not rel_path.endswith(Constants.MODULE_FILE_SUFFIX):
        return None
    parts = rel_path[: -len(Constants.MODULE_FILE_SUFFIX)].replace(os.sep, "/").split("/")
    while parts and not re.match(r"^[A-Za-z_]\w*$", parts[0]):
        parts = parts[1:]
    if not parts or parts[0] == "auto":
        return None
    name = "::".join(parts)
    return name if is_valid_module_name(name) else None


def parse_module_version(path: str, module_name: Optional[str] = None) -> Optional[str]:
    """Extract the declared version from a module file.

    Recognizes ``package NAME VERSION;`` and the first ``$VERSION``
    assignment outside POD, stopping at ``__END__``/``__DATA__``.
    """
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            in_pod = False
            for line in handle:
                if in_pod:
                    if _POD_END_RE.match(line):
                        in_pod = False
                    continue
                if _POD_START_RE.match(line):
                    in_pod = True
                    continue
                if line.startswith(("__END__", "__DATA__")):
                    break
                stripped = line.lstrip()
                if stripped.startswith("#"):
                    continue
                pkg = _PACKAGE_VERSION_RE.match(line)
                if pkg and (module_name is None or pkg.group(1) == module_name):
                    return pkg.group(2)
                if _VERSION_ASSIGN_RE.search(line):
                    value = _VERSION_VALUE_RE.search(line)
                    if value:
                        return value.group(1).rstrip(".")
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
    return None


def scan_directories(dirs: Iterable[str]) -> List[InstalledModule]:
    """Walk library directories and return every versioned module found.

    When the same module appears in several directories the first one in
    search order wins, as it would at load time.
    """
    found: Dict[str, InstalledModule] = {}
    for base in dirs:
        if not os.path.isdir(base):
            logger.warning("Not a directory, skipping: %s", base)
            continue
        logger.info("Scanning %s", base)
        for root, subdirs, files in os.walk(base):
            subdirs.sort()
            for filename in sorted(files):
                if not filename.endswith(Constants.MODULE_FILE_SUFFIX):
                    continue
                path = os.path.join(root, filename)
                name = module_name_from_path(os.path.relpath(path, base))
                if name is None or name in found:
                    continue
                version = parse_module_version(path, name)
                if version is None:
                    if is_debug_enabled(logger):
                        logger.debug(
                            "Module without version skipped",
                            extra=extra_context(event="skip", component="scan", target=name),
                        )
                    continue
                found[name] = InstalledModule(name=name, installed_version=version, source_path=path)
    modules = sorted(found.values(), key=lambda m: m.sort_key)
    logger.info("Found %d versioned modules.", len(modules))
    return modules


def load_module_list(file_name: str) -> List[InstalledModule]:
    """Load ``Module::Name 1.23`` lines from a file.

    Args:
        file_name (str): File path containing the list of modules.

    Returns:
        list: Installed modules; unversioned lines are skipped with a warning.
    """
    modules: List[InstalledModule] = []
    try:
        with open(file_name, encoding="utf-8") as file:
            for lineno, line in enumerate(file, 1):
                text = line.split("#", 1)[0].strip()
                if not text:
                    continue
                name, version = tokenize_module_token(text)
                if not version:
                    logger.warning("%s:%d: no version for %s, skipping", file_name, lineno, name)
                    continue
                modules.append(InstalledModule(name=name, installed_version=version, source_path=file_name))
    except FileNotFoundError as e:
        logging.error("File not found: %s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except IOError as e:
        logging.error("IO error: %s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    return modules
