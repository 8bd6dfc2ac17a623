"""Reading NDJSON usage exports from disk.

A file that cannot be read is reported and skipped; the remaining files are
still parsed. Line-level problems come back as ParseDiagnostics tagged with
the file path.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from copilot_metrics.core.record_parser import ParseDiagnostic, ParseResult, parse_lines
from copilot_metrics.core.records import UsageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileReadError:
    path: str
    error: str


@dataclass
class MultiFileResult:
    records: list[UsageRecord] = field(default_factory=list)
    diagnostics: list[ParseDiagnostic] = field(default_factory=list)
    errors: list[FileReadError] = field(default_factory=list)


def read_metrics_file(path: str | Path) -> ParseResult:
    """Parse one NDJSON file. OSError propagates.

    Lines are decoded individually, so invalid UTF-8 on one line becomes a
    diagnostic for that line only.
    """
    source = str(path)
    with open(path, "rb") as f:
        result = parse_lines(f, source=source)
    logger.info(
        "read %s: %d records, %d skipped lines",
        source,
        len(result.records),
        len(result.diagnostics),
    )
    return result


def read_metrics_files(paths: Iterable[str | Path]) -> MultiFileResult:
    """Parse several files into one record list, in argument order."""
    combined = MultiFileResult()
    for path in paths:
        try:
            result = read_metrics_file(path)
        except OSError as e:
            logger.error("cannot read %s: %s", path, e)
            combined.errors.append(FileReadError(path=str(path), error=str(e)))
            continue
        combined.records.extend(result.records)
        combined.diagnostics.extend(result.diagnostics)
    return combined
