"""
Line-delimited (JSONL) beads parser.

Each non-blank line of ``beads.jsonl`` is one complete JSON record. A bad
line never fails the file: it is recorded as a ``ParseError`` tagged with
its 1-based line number and parsing carries on with the next line.

Duplicate IDs resolve last-seen-wins. The earlier copy is dropped and a
diagnostic points at the line that superseded it. Tombstoned records are
removed after de-duplication, so a tombstone written after a live record
deletes it.
"""

import json
import logging
import os
from typing import Dict, Iterable, List, Tuple

from pydantic import ValidationError

from ..bead_schemas import Bead, ParseError, ParseResult, SourceFormat
from ..exceptions import SourceError

logger = logging.getLogger(__name__)


def parse_line(line: str) -> Bead:
    """
    Parse a single JSONL record into a bead.

    Args:
        line: One stripped, non-empty line

    Returns:
        Bead with parse-time relationship fields derived

    Raises:
        ValueError: If the line is not a JSON object or fails validation
    """
    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise ValueError(f"expected a JSON object, got {type(obj).__name__}")

    try:
        bead = Bead.model_validate(obj)
    except ValidationError as e:
        raise ValueError(_summarize_validation_error(e)) from e

    bead.derive_relationships()
    return bead


def parse_lines(lines: Iterable[bytes]) -> Tuple[List[Bead], List[ParseError]]:
    """
    Parse raw JSONL lines.

    Args:
        lines: Raw lines as read from the file, in order

    Returns:
        (beads, errors) with duplicates and tombstones already resolved
    """
    by_id: Dict[str, Tuple[int, Bead]] = {}
    errors: List[ParseError] = []

    for line_num, raw in enumerate(lines, start=1):
        try:
            line = raw.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            errors.append(ParseError(line_num, "failed to decode line", str(e)))
            continue

        if not line:
            continue

        try:
            bead = parse_line(line)
        except ValueError as e:
            errors.append(ParseError(line_num, "failed to parse bead", str(e)))
            continue

        previous = by_id.get(bead.id)
        if previous is not None:
            errors.append(
                ParseError(
                    previous[0],
                    f"duplicate id '{bead.id}'",
                    f"superseded by line {line_num}",
                )
            )
        by_id[bead.id] = (line_num, bead)

    beads = [bead for _, bead in by_id.values() if not bead.is_tombstone()]
    return beads, errors


def parse_jsonl(file_path: str) -> ParseResult:
    """
    Parse a beads JSONL file.

    Args:
        file_path: Path to ``beads.jsonl``

    Returns:
        ParseResult with every valid, non-tombstoned bead

    Raises:
        SourceError: If the file cannot be opened, stat'd or read
    """
    try:
        with open(file_path, "rb") as f:
            file_size = os.fstat(f.fileno()).st_size
            beads, errors = parse_lines(f)
    except OSError as e:
        raise SourceError(f"failed to read {file_path}: {e}", path=file_path) from e

    if errors:
        logger.warning(f"[Parser] {file_path}: {len(errors)} line(s) skipped or superseded")
        for error in errors[:5]:
            logger.debug(f"[Parser]   {error}")

    logger.info(f"[Parser] Parsed {len(beads)} beads from {file_path} ({file_size} bytes)")

    return ParseResult(
        beads=beads,
        errors=errors,
        file_size=file_size,
        source_path=file_path,
        source_format=SourceFormat.JSONL,
    )


def _summarize_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        loc = ".".join(str(p) for p in detail.get("loc", ())) or "record"
        parts.append(f"{loc}: {detail.get('msg', 'invalid')}")
    return "; ".join(parts)
