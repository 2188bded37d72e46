"""Composite key construction for source and target rows."""

from collections.abc import Mapping
from typing import Any, List, Optional, Sequence, Union

from reconciler.config.models import FieldMapping, Side
from reconciler.config.rules import KEY_SEPARATOR
from reconciler.core.normalizer import to_text


class InvalidRowError(TypeError):
    """Raised when a row is not a field->value mapping."""


def ensure_row(row: Any, side: Union[Side, str], index: Optional[int] = None) -> Mapping:
    """
    Check that a row has the field->value shape.

    Args:
        row: Row to check
        side: Side the row belongs to
        index: Position of the row in its dataset

    Returns:
        Mapping: The row itself

    Raises:
        InvalidRowError: If the row is not a mapping
    """
    if not isinstance(row, Mapping):
        position = f" {index}" if index is not None else ""
        raise InvalidRowError(
            f"Invalid row shape for {Side(side).value} row{position}: "
            f"expected a field->value mapping, got {type(row).__name__}"
        )
    return row


def key_mappings(mappings: Sequence[FieldMapping]) -> List[FieldMapping]:
    """Mappings flagged as key, in declaration order."""
    return [m for m in mappings if m.is_key]


def build_key(
    row: Mapping,
    mappings: Sequence[FieldMapping],
    side: Union[Side, str]
) -> List[str]:
    """
    Project a row onto its composite key.

    Args:
        row: Row to read values from
        mappings: Key mappings, compared positionally
        side: Which field of each mapping to read

    Returns:
        List[str]: One stringified value per mapping, missing values as ''
    """
    side = Side(side)
    return [to_text(row.get(mapping.field_for(side))) for mapping in mappings]


def join_key(parts: Sequence[str], separator: str = KEY_SEPARATOR) -> str:
    return separator.join(parts)
