"""Parse the comma-separated tables written by the station data loggers.

Two layouts exist on the file store and the caller picks one explicitly:

``SIMPLE``  (history exports)
    line 1 header, every following line a data row.  Rows whose width differs
    from the header are tail-of-file noise and are skipped.

``BANKED``  (TOA5-style "latest" tables)
    line 1 file banner, line 2 header, lines 3-4 units / processing banners,
    data from line 5.  Short rows are skipped; long rows are truncated to the
    header width (some loggers append an extra trailing column).

Both layouts trim header names and drop the empty column produced by a
trailing delimiter.  A malformed data row never raises; only a missing or
empty header does, because then nothing in the file is usable.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from station_telemetry.core.errors import TelemetryError

logger = logging.getLogger(__name__)

RawRecord = dict[str, str]


class ParseError(TelemetryError):
    """Raised when a file cannot be parsed at all."""

    code = "UNREADABLE_FILE"


class InvalidHeaderError(ParseError):
    """The header row is absent or contains no column names."""


@dataclass(frozen=True)
class TableLayout:
    """Where the header sits and how data rows of the wrong width are treated."""

    name: str
    lines_before_header: int
    lines_after_header: int
    truncate_long_rows: bool


SIMPLE = TableLayout("simple", lines_before_header=0, lines_after_header=0, truncate_long_rows=False)
BANKED = TableLayout("banked", lines_before_header=1, lines_after_header=2, truncate_long_rows=True)


@dataclass
class ParsedTable:
    """Header plus the rows that survived normalization."""

    layout: str
    columns: list[str]
    records: list[RawRecord] = field(default_factory=list)
    skipped_rows: int = 0


_EOF = object()


def _read_rows(lines: Iterable[str]) -> Iterator[list[str] | None]:
    """Yield CSV rows; a row the csv module rejects (e.g. NUL bytes) yields None."""
    reader = csv.reader(lines, delimiter=",", quotechar='"', escapechar="\\")
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error:
            yield None
            continue
        yield row


def _header_columns(row: list[str] | None) -> tuple[list[str], int]:
    """Trim names and strip trailing empty columns; returns (columns, dropped)."""
    if not row:
        raise InvalidHeaderError("Missing header row")

    columns = [name.strip() for name in row]
    dropped = 0
    while columns and columns[-1] == "":
        columns.pop()
        dropped += 1

    if not columns:
        raise InvalidHeaderError("Header row contains no column names")
    return columns, dropped


def _normalize_row(
    row: list[str], width: int, trailing_dropped: int, truncate: bool
) -> list[str] | None:
    """Fit a data row to the header width, or return None to skip it."""
    if trailing_dropped and len(row) > width and not any(c.strip() for c in row[width:]):
        row = row[:width]

    if len(row) == width:
        return row
    if len(row) > width and truncate:
        return row[:width]
    return None


def parse_table(lines: Iterable[str] | str, layout: TableLayout) -> ParsedTable:
    """Parse raw file lines into string-keyed records using ``layout``.

    Args:
        lines: File content, either as an iterable of lines or one string.
        layout: ``SIMPLE`` or ``BANKED``.

    Raises:
        InvalidHeaderError: if the header row is missing or empty.
    """
    if isinstance(lines, str):
        lines = lines.splitlines()

    rows = _read_rows(lines)

    for _ in range(layout.lines_before_header):
        if next(rows, _EOF) is _EOF:
            raise InvalidHeaderError("File ended before the header row")

    columns, trailing_dropped = _header_columns(next(rows, None))

    for _ in range(layout.lines_after_header):
        next(rows, None)

    table = ParsedTable(layout=layout.name, columns=columns)
    width = len(columns)

    for row in rows:
        if row is None:
            table.skipped_rows += 1
            continue
        if not row or (len(row) == 1 and not row[0].strip()):
            continue
        fitted = _normalize_row(row, width, trailing_dropped, layout.truncate_long_rows)
        if fitted is None:
            table.skipped_rows += 1
            continue
        table.records.append(dict(zip(columns, fitted)))

    if table.skipped_rows:
        logger.debug(
            "Skipped %d malformed rows (%s layout, %d columns)",
            table.skipped_rows, layout.name, width,
        )
    return table
