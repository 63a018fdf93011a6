"""Reading and writing the ``02packages.details.txt.gz`` package index."""
from __future__ import annotations

import gzip
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# package name -> (version, author-relative archive path)
PackageIndex = Dict[str, Tuple[str, str]]

_HEADER = """File:         02packages.details.txt
URL:          http://www.perl.com/CPAN/modules/02packages.details.txt
Description:  Package names found in directory $CPAN/authors/id/
Columns:      package name, version, path
Intended-For: Automated fetch routines, namespace documentation.
Written-By:   dist-surveyor
Line-Count:   {count}
Last-Updated: {updated}

"""


def read_index(path: str) -> PackageIndex:
    """Parse an existing index; a missing file yields an empty index."""
    entries: PackageIndex = {}
    if not os.path.exists(path):
        return entries
    with gzip.open(path, "rt", encoding="utf-8") as handle:
        in_header = True
        for line in handle:
            if in_header:
                if not line.strip():
                    in_header = False
                continue
            parts = line.split()
            if len(parts) != 3:
                logger.warning("Ignoring malformed index line: %r", line.rstrip())
                continue
            package, version, archive = parts
            entries[package] = (version, archive)
    return entries


def write_index(path: str, entries: PackageIndex, now: Optional[datetime] = None) -> None:
    """Write ``entries`` sorted by package name, replacing ``path`` atomically."""
    now = now or datetime.now(timezone.utc)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    header = _HEADER.format(count=len(entries), updated=now.strftime("%a, %d %b %Y %H:%M:%S GMT"))
    fd, tmp_path = tempfile.mkstemp(prefix=".index-", dir=directory)
    os.close(fd)
    try:
        with gzip.open(tmp_path, "wt", encoding="utf-8") as handle:
            handle.write(header)
            for package in sorted(entries, key=str.lower):
                version, archive = entries[package]
                handle.write(f"{package:<40} {version:>10}  {archive}\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
