"""Data models for module version handling."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class VersionKind(Enum):
    """How a raw version string was interpreted."""
    DECIMAL = "decimal"    # 1.23, 1.23_01
    DOTTED = "dotted"      # v1.2.3, 1.2.3
    OTHER = "other"        # anything not numifiable (e.g. "1.0-beta")
    MISSING = "missing"    # undef / empty / "undef"


@dataclass(frozen=True)
class ParsedVersion:
    """Normalized representation of a module version string."""
    raw: str
    kind: VersionKind
    numified: Optional[Decimal]
    is_trial: bool = False
