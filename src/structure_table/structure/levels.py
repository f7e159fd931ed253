from __future__ import annotations

import logging
from enum import Enum
from typing import Union

from ..errors import NotFoundError, ValidationError
from ..model import FieldKey, Section, Structure, Subsection

logger = logging.getLogger(__name__)


class Level(str, Enum):
    SECTION = "section"
    SUBSECTION = "subsection"
    FIELD = "field"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"

    @property
    def step(self) -> int:
        return -1 if self is Direction.UP else 1


# A field's parent is its subsection name, or (section, subsection) to disambiguate
# subsections that share a name across sections.
FieldParent = Union[str, tuple[str, str]]


def subsection_matches(parent_id: FieldParent, section: Section, subsection: Subsection) -> bool:
    if isinstance(parent_id, tuple):
        return (section.name, subsection.name) == tuple(parent_id)
    return subsection.name == parent_id


def as_field_key(item_id: FieldKey | tuple[str, str] | str) -> FieldKey:
    if isinstance(item_id, FieldKey):
        return item_id
    if isinstance(item_id, str):
        return FieldKey.parse(item_id)
    return FieldKey(*item_id)


def not_found(structure: Structure, strict: bool, message: str) -> Structure:
    """Unknown ids are a no-op unless the caller opted into strict lookups."""
    if strict:
        raise NotFoundError(message)
    logger.debug("%s; leaving structure %s unchanged", message, structure.key)
    return structure


def require_parent(level: Level, parent_id: FieldParent | None) -> None:
    """Subsections are located within a section and fields within a subsection."""
    if level is Level.SECTION or parent_id is not None:
        return
    what = "section" if level is Level.SUBSECTION else "subsection"
    raise ValidationError(f"A {level.value} is located by its {what}; no parent given")
