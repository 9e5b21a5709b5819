"""
Output index map loading (the ``tags`` list of the model's config.json).
"""

import json
from pathlib import Path
from typing import IO, Optional, Tuple, Union
from pydantic import ValidationError
from .metadata import ParseError
from .models import TimmConfig
from .logging import get_logger

ConfigSource = Union[str, Path, IO[str], IO[bytes]]

logger = get_logger("output_map")


def parse_output_map(document: Union[str, bytes], expected_length: Optional[int] = None) -> Tuple[str, ...]:
    """Parse a config document into the ordered tuple of output tag names.

    Position ``i`` of the result names the ``i``-th value of the model's
    prediction vector, so the order of the ``tags`` list is kept exactly.
    """
    try:
        data = json.loads(document)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Invalid JSON in output map config: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("Output map config must be a JSON object with a 'tags' list")

    try:
        config = TimmConfig.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Invalid output map config: {e}") from e

    tags = tuple(config.tags)
    if expected_length is not None and len(tags) != expected_length:
        raise ParseError(
            f"Output map has {len(tags)} tags but the model produces {expected_length} outputs"
        )
    return tags


def load_output_map(source: ConfigSource, expected_length: Optional[int] = None) -> Tuple[str, ...]:
    """Load the output map from a config.json path or stream."""
    if isinstance(source, (str, Path)):
        document = Path(source).read_bytes()
    else:
        document = source.read()

    tags = parse_output_map(document, expected_length)
    logger.debug(f"🗺️  Loaded output map with {len(tags)} tags")
    return tags
