"""Version comparison helpers.

Numified comparison is authoritative. Versions that cannot be numified are
compared with PEP 440 rules when ``packaging`` accepts them, and only fall back
to plain string comparison as a last resort so ordering stays total and
deterministic.
"""

from typing import Any, Optional, Tuple

from packaging import version as pep440

from .models import VersionKind
from .parser import parse_version


def _pep440(raw: str) -> Optional[pep440.Version]:
    try:
        return pep440.Version(raw)
    except pep440.InvalidVersion:
        return None


def version_sort_key(raw: Optional[str]) -> Tuple[int, Any]:
    """Total-order key: numifiable < PEP 440 < opaque strings; missing sorts first."""
    parsed = parse_version(raw)
    if parsed.kind == VersionKind.MISSING:
        return (-1, 0)
    if parsed.numified is not None:
        return (0, parsed.numified)
    pep = _pep440(parsed.raw)
    if pep is not None:
        return (1, pep)
    return (2, parsed.raw)


def compare_versions(a: Optional[str], b: Optional[str]) -> int:
    """Return -1, 0 or 1 comparing two module versions."""
    pa, pb = parse_version(a), parse_version(b)
    if pa.numified is not None and pb.numified is not None:
        return (pa.numified > pb.numified) - (pa.numified < pb.numified)
    ka, kb = version_sort_key(a), version_sort_key(b)
    if ka == kb:
        return 0
    return 1 if ka > kb else -1


def versions_match(installed: Optional[str], declared: Optional[str]) -> bool:
    """True when a declared module version equals the installed one.

    Two missing versions never match: a module without a version cannot be
    attributed by version.
    """
    pi, pd = parse_version(installed), parse_version(declared)
    if pi.kind == VersionKind.MISSING or pd.kind == VersionKind.MISSING:
        return False
    if pi.numified is not None and pd.numified is not None:
        return pi.numified == pd.numified
    return compare_versions(installed, declared) == 0
