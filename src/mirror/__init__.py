"""Local mirror (mini CPAN) output for resolved releases."""

from .builder import MirrorBuilder, MirrorReport, token_package  # noqa: F401
from .index import read_index, write_index  # noqa: F401

__all__ = ["MirrorBuilder", "MirrorReport", "token_package", "read_index", "write_index"]
