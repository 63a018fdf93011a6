"""Rendering and export of survey results (text template, JSON, CSV)."""
from __future__ import annotations

import csv
import io
import json
import logging
import sys
from typing import IO, List, Optional

from constants import Constants, ExitCodes, OutputFormats
from common.errors import ConfigurationError
from resolution.models import SurveyResult

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "record",
    "distribution_name",
    "version",
    "author",
    "release_date",
    "archive_url",
    "modules",
    "reason",
    "detail",
]


def decode_template(template: str) -> str:
    """Expand ``\\n`` and ``\\t`` escapes typed on a command line."""
    return template.replace("\\n", "\n").replace("\\t", "\t")


def render_text(result: SurveyResult, template: Optional[str] = None) -> str:
    """Render resolved releases through ``template``, one per line.

    Unresolved and ambiguous modules follow as ``#`` comment lines so nothing
    is silently dropped from the report.

    Raises:
        ConfigurationError: the template names an unknown field.
    """
    template = decode_template(template or Constants.DEFAULT_TEMPLATE)
    lines: List[str] = []
    for record in result.resolved:
        try:
            lines.append(template.format_map(record.fields()))
        except KeyError as exc:
            raise ConfigurationError(
                f"unknown field {exc} in output template; available: {', '.join(sorted(record.fields()))}"
            ) from exc
    for item in result.ambiguities:
        lines.append(
            f"# ambiguous: {item.module} {item.version or ''} -> {item.chosen}"
            f" (candidates: {', '.join(item.candidates)})"
        )
    for item in result.unresolved:
        suffix = f": {item.detail}" if item.detail else ""
        lines.append(f"# unresolved: {item.name} {item.version or ''} ({item.reason.value}{suffix})")
    return "\n".join(lines) + ("\n" if lines else "")


def render_json(result: SurveyResult) -> str:
    return json.dumps(result.to_dict(), indent=2, sort_keys=True) + "\n"


def render_csv(result: SurveyResult) -> str:
    buffer = io.StringIO()
    export = csv.writer(buffer, lineterminator="\n")
    export.writerow(CSV_HEADERS)
    for r in result.resolved:
        export.writerow([
            "resolved",
            r.distribution_name,
            r.version,
            r.author,
            r.release.release_date,
            r.archive_url,
            " ".join(r.covered_modules),
            "",
            "",
        ])
    for u in result.unresolved:
        export.writerow(["unresolved", "", u.version or "", "", "", "", u.name, u.reason.value, u.detail])
    for a in result.ambiguities:
        export.writerow(["ambiguous", a.chosen, a.version or "", "", "", "", a.module, "", " ".join(a.candidates)])
    return buffer.getvalue()


def infer_format(output_path: Optional[str], explicit: Optional[str]) -> str:
    """Pick the output format: explicit flag, then file extension, then text."""
    if explicit:
        return explicit.lower()
    if output_path:
        lower = output_path.lower()
        if lower.endswith(".json"):
            return OutputFormats.JSON.value
        if lower.endswith(".csv"):
            return OutputFormats.CSV.value
    return OutputFormats.TEXT.value


def render(result: SurveyResult, fmt: str, template: Optional[str] = None) -> str:
    if fmt == OutputFormats.JSON.value:
        return render_json(result)
    if fmt == OutputFormats.CSV.value:
        return render_csv(result)
    return render_text(result, template)


def write_output(
    result: SurveyResult,
    path: Optional[str],
    fmt: str,
    template: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Write the rendered result to ``path`` (or ``stream``/stdout)."""
    content = render(result, fmt, template)
    if not path:
        (stream or sys.stdout).write(content)
        return
    try:
        with open(path, "w", encoding="utf-8", newline="") as file:
            file.write(content)
        logging.info("%s output has been successfully exported at: %s", fmt.upper(), path)
    except OSError as e:
        logging.error("Output file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
