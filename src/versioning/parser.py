"""Version and token parsing utilities for installed-module surveys."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from .models import ParsedVersion, VersionKind

_DECIMAL_RE = re.compile(r'^(\d*)(?:\.(\d+))?$')
_DOTTED_RE = re.compile(r'^v?\d+(?:\.\d+)+$|^v\d+$')
_MODULE_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(?:(?:::|\')[A-Za-z0-9_]+)*$')


def parse_version(raw: Optional[str]) -> ParsedVersion:
    """Numify a module version the way the module toolchain compares them.

    Decimal versions compare as numbers (``1.10`` == ``1.1`` < ``1.9``) with
    underscores dropped. Dotted-decimal versions (``v1.2.3`` or anything with
    two or more dots) numify to ``1.002003``; an underscore there is treated
    as a component separator.
    """
    if raw is None:
        return ParsedVersion(raw="", kind=VersionKind.MISSING, numified=None)
    text = str(raw).strip()
    if text in ('', 'undef'):
        return ParsedVersion(raw=text, kind=VersionKind.MISSING, numified=None)

    is_trial = '_' in text or text.upper().endswith('-TRIAL')
    core = text[:-6] if text.upper().endswith('-TRIAL') else text

    dotted_candidate = core.replace('_', '.')
    if core.startswith('v') or core.count('.') >= 2:
        if _DOTTED_RE.match(dotted_candidate):
            parts = dotted_candidate.lstrip('v').split('.')
            digits = ''.join(f"{int(p):03d}" for p in parts[1:])
            value = Decimal(f"{int(parts[0])}.{digits}") if digits else Decimal(int(parts[0]))
            return ParsedVersion(raw=text, kind=VersionKind.DOTTED, numified=value, is_trial=is_trial)
        return ParsedVersion(raw=text, kind=VersionKind.OTHER, numified=None, is_trial=is_trial)

    decimal_candidate = core.replace('_', '')
    match = _DECIMAL_RE.match(decimal_candidate)
    if match and (match.group(1) or match.group(2)):
        try:
            value = Decimal(decimal_candidate if match.group(1) else '0' + decimal_candidate)
        except InvalidOperation:
            return ParsedVersion(raw=text, kind=VersionKind.OTHER, numified=None, is_trial=is_trial)
        return ParsedVersion(raw=text, kind=VersionKind.DECIMAL, numified=value, is_trial=is_trial)

    return ParsedVersion(raw=text, kind=VersionKind.OTHER, numified=None, is_trial=is_trial)


def is_valid_module_name(name: str) -> bool:
    """Return True if ``name`` looks like a package name (``Foo::Bar``)."""
    return bool(name) and bool(_MODULE_NAME_RE.match(name))


def tokenize_module_token(s: str) -> Tuple[str, Optional[str]]:
    """Return (module name, version or None) from a list-file token.

    Accepts ``Foo::Bar 1.23`` (whitespace separated) and ``Foo::Bar@1.23``.
    The rightmost ``@`` wins because module names never contain one.
    """
    s = s.strip()
    if not s:
        return '', None
    if '@' in s:
        name, _, version = s.rpartition('@')
        version = version.strip()
        return name.strip(), version or None
    parts = s.split()
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1]


def distribution_from_release(release_name: str, distribution: Optional[str]) -> Tuple[str, str]:
    """Split a release name like ``Foo-Bar-1.23`` into (distribution, version).

    When the registry already told us the distribution, strip it as a prefix;
    otherwise split on the last hyphen.
    """
    if distribution and release_name.startswith(distribution + '-'):
        return distribution, release_name[len(distribution) + 1:]
    if '-' not in release_name:
        return release_name, ''
    dist, _, version = release_name.rpartition('-')
    return dist, version


def to_dotted(raw: str) -> Optional[str]:
    """Render a runtime version as a dotted triple (``5.036000`` -> ``5.36.0``).

    Runtime releases are published under dotted names, while users often
    quote the numified form. Returns None when ``raw`` is not a version.
    """
    parsed = parse_version(raw)
    if parsed.numified is None:
        return None
    if parsed.kind == VersionKind.DOTTED:
        parts = parsed.raw.lstrip('v').replace('_', '.').split('.')
        parts = [str(int(p)) for p in parts]
    else:
        whole, _, frac = parsed.raw.replace('_', '').partition('.')
        frac = frac.ljust(((len(frac) + 2) // 3) * 3 or 3, '0')
        parts = [str(int(whole or '0'))] + [str(int(frac[i:i + 3])) for i in range(0, len(frac), 3)]
    while len(parts) < 3:
        parts.append('0')
    return '.'.join(parts)
