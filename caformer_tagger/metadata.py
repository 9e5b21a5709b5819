"""
Tag vocabulary loading (selected_tags.csv).
"""

import csv
import io
from pathlib import Path
from typing import IO, Dict, Union
from pydantic import ValidationError
from .models import TagRecord
from .logging import get_logger

REQUIRED_COLUMNS = ("name", "category", "best_threshold")

TagSource = Union[str, Path, IO[str], IO[bytes]]

logger = get_logger("metadata")


class ParseError(Exception):
    """Raised when a tag or config file is malformed."""
    pass


def _open_text(source: TagSource):
    """Return a text stream for ``source`` and whether the caller must close it."""
    if isinstance(source, (str, Path)):
        return open(source, "r", encoding="utf-8-sig", newline=""), True
    if isinstance(source, io.TextIOBase):
        return source, False
    # Binary stream; leave the underlying stream open for the caller
    return io.TextIOWrapper(source, encoding="utf-8-sig", newline=""), False


def parse_tag_rows(stream: IO[str]) -> Dict[str, TagRecord]:
    """Parse CSV rows into a mapping keyed by tag name.

    Extra columns (``tag_id``, ``count`` ...) are ignored. Every record must carry
    all of ``name``, ``category`` and ``best_threshold``; there are no defaults.
    """
    reader = csv.DictReader(stream)
    if reader.fieldnames is None:
        raise ParseError("Tag metadata is empty (no header row)")

    fieldnames = [name.strip() for name in reader.fieldnames]
    missing = [column for column in REQUIRED_COLUMNS if column not in fieldnames]
    if missing:
        raise ParseError(f"Tag metadata header is missing column(s): {', '.join(missing)}")
    reader.fieldnames = fieldnames

    records: Dict[str, TagRecord] = {}
    for row in reader:
        line = reader.line_num
        values = {column: row.get(column) for column in REQUIRED_COLUMNS}
        empty = [column for column, value in values.items() if value is None or not value.strip()]
        if empty:
            raise ParseError(f"Line {line}: missing value for {', '.join(empty)}")

        try:
            record = TagRecord(
                name=values["name"].strip(),
                category=values["category"].strip(),
                best_threshold=values["best_threshold"].strip(),
            )
        except ValidationError as e:
            raise ParseError(f"Line {line}: invalid tag record: {e}") from e

        if record.name in records:
            raise ParseError(f"Line {line}: duplicate tag name '{record.name}'")
        records[record.name] = record

    return records


def load_tag_metadata(source: TagSource) -> Dict[str, TagRecord]:
    """Load the tag vocabulary from a CSV path or stream."""
    stream, should_close = _open_text(source)
    try:
        records = parse_tag_rows(stream)
    except (UnicodeDecodeError, csv.Error) as e:
        raise ParseError(f"Unreadable tag metadata: {e}") from e
    finally:
        if should_close:
            stream.close()
        elif isinstance(stream, io.TextIOWrapper) and stream is not source:
            # Detach so closing the wrapper later does not close the caller's stream
            stream.detach()

    logger.debug(f"📋 Loaded {len(records)} tag records")
    return records
