"""Record parsers for the two beads source encodings.

The caller picks the encoding; parsers never sniff file contents.

    >>> from seebeads.parsers import parse_source, detect_source_format
    >>> result = parse_source(path, detect_source_format(path))
"""

from pathlib import Path
from typing import Optional, Union

from ..bead_schemas import ParseResult, SourceFormat
from .jsonl import parse_jsonl, parse_line
from .tabular import find_issues_table, parse_sqlite, parse_timestamp, resolve_columns

SQLITE_SUFFIXES = (".db", ".sqlite", ".sqlite3")


def detect_source_format(path: Union[str, Path]) -> SourceFormat:
    """Choose an encoding from the file name alone."""
    if Path(path).suffix.lower() in SQLITE_SUFFIXES:
        return SourceFormat.SQLITE
    return SourceFormat.JSONL


def parse_source(path: Union[str, Path], source_format: Optional[SourceFormat] = None) -> ParseResult:
    """
    Parse a beads source with the given encoding.

    Args:
        path: Source file
        source_format: Encoding; derived from the file name when None

    Returns:
        ParseResult from the matching parser

    Raises:
        SourceError: If the source cannot be read at all
    """
    source_format = SourceFormat(source_format) if source_format else detect_source_format(path)
    if source_format == SourceFormat.SQLITE:
        return parse_sqlite(str(path))
    return parse_jsonl(str(path))


__all__ = [
    "SQLITE_SUFFIXES",
    "detect_source_format",
    "find_issues_table",
    "parse_jsonl",
    "parse_line",
    "parse_source",
    "parse_sqlite",
    "parse_timestamp",
    "resolve_columns",
]
