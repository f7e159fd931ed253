"""Sibling reordering for sections, subsections and fields."""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Sequence, TypeVar

from ..model import Field, FieldKey, Section, Structure, Subsection
from .levels import (
    Direction,
    FieldParent,
    Level,
    as_field_key,
    not_found,
    require_parent,
    subsection_matches,
)

T = TypeVar("T", Section, Subsection, Field)

# (current index, sibling count) -> new index, or None to leave the siblings alone
Target = Callable[[int, int], "int | None"]


class _Missing(Exception):
    pass


def _renumbered(items: Sequence[T]) -> tuple[T, ...]:
    return tuple(
        item if item.order == pos + 1 else replace(item, order=pos + 1)
        for pos, item in enumerate(items)
    )


def _sorted(items: Sequence[T]) -> list[T]:
    # stable: ties keep their list position
    return sorted(items, key=lambda item: item.order)


def _reorder_in(items: Sequence[T], match: Callable[[T], bool], target: Target) -> tuple[T, ...] | None:
    """Returns the reordered, renumbered siblings, or None when nothing moves."""
    ordered = _sorted(items)
    current = next((i for i, item in enumerate(ordered) if match(item)), None)
    if current is None:
        raise _Missing()
    new_index = target(current, len(ordered))
    if new_index is None or new_index == current:
        return None
    ordered.insert(new_index, ordered.pop(current))
    return _renumbered(ordered)


def _step(step: int) -> Target:
    def target(current: int, count: int) -> int | None:
        new_index = current + step
        if new_index < 0 or new_index >= count:
            return None
        return new_index

    return target


def _position(position: int) -> Target:
    def target(current: int, count: int) -> int:
        return min(max(position, 1), count) - 1

    return target


def _with_sections(
    structure: Structure, sections: tuple[Section, ...], *, section_order: bool = False
) -> Structure:
    doc = structure.document
    if not section_order:
        return replace(structure, document=replace(doc, sections=sections))
    order = replace(
        doc.order, sections={**doc.order.sections, **{s.name: s.order for s in sections}}
    )
    return replace(structure, document=replace(doc, sections=sections, order=order))


def _reorder(
    structure: Structure,
    level: Level,
    parent_id: FieldParent | None,
    item_id: str | FieldKey | tuple[str, str],
    target: Target,
    strict: bool,
) -> Structure:
    require_parent(level, parent_id)
    doc = structure.document

    if level is Level.SECTION:
        try:
            moved = _reorder_in(doc.sections, lambda s: s.name == item_id, target)
        except _Missing:
            return not_found(structure, strict, f"Section {item_id!r} not found")
        if moved is None:
            return structure
        return _with_sections(structure, moved, section_order=True)

    if level is Level.SUBSECTION:
        section = doc.get_section(str(parent_id))
        if section is None:
            return not_found(structure, strict, f"Section {parent_id!r} not found")
        try:
            moved = _reorder_in(section.subsections, lambda s: s.name == item_id, target)
        except _Missing:
            return not_found(
                structure, strict, f"Subsection {parent_id!r}/{item_id!r} not found"
            )
        if moved is None:
            return structure
        new_section = replace(section, subsections=moved)
        return _with_sections(
            structure,
            tuple(new_section if s.name == section.name else s for s in doc.sections),
        )

    key = as_field_key(item_id)
    found = False
    changed = False
    sections: list[Section] = []
    for section in doc.sections:
        subsections: list[Subsection] = []
        for sub in section.subsections:
            if not subsection_matches(parent_id, section, sub):
                subsections.append(sub)
                continue
            try:
                moved_fields = _reorder_in(sub.fields, lambda f: f.key == key, target)
            except _Missing:
                subsections.append(sub)
                continue
            found = True
            if moved_fields is None:
                subsections.append(sub)
                continue
            changed = True
            subsections.append(replace(sub, fields=moved_fields))
        sections.append(replace(section, subsections=tuple(subsections)))

    if not found:
        return not_found(structure, strict, f"Field {key} under {parent_id!r} not found")
    if not changed:
        return structure
    return _with_sections(structure, tuple(sections))


def move(
    structure: Structure,
    level: Level | str,
    parent_id: FieldParent | None,
    item_id: str | FieldKey | tuple[str, str],
    direction: Direction | str,
    *,
    strict: bool = False,
) -> Structure:
    """
    Moves an item one place up or down among its siblings.

    Siblings are taken in ascending ``order``; after the swap every sibling is
    renumbered ``1..N``. Moving the first item up or the last item down returns
    the structure unchanged. Subsections need their section and fields their
    subsection as ``parent_id``.
    """
    return _reorder(
        structure, Level(level), parent_id, item_id, _step(Direction(direction).step), strict
    )


def move_to(
    structure: Structure,
    level: Level | str,
    parent_id: FieldParent | None,
    item_id: str | FieldKey | tuple[str, str],
    position: int,
    *,
    strict: bool = False,
) -> Structure:
    """
    Drops an item at 1-based ``position`` among its siblings.

    The others shift to make room and all are renumbered ``1..N``. Positions
    outside the list are clamped to its ends; dropping an item where it already
    is returns the structure unchanged.
    """
    return _reorder(structure, Level(level), parent_id, item_id, _position(position), strict)


def renumber(structure: Structure) -> Structure:
    """Makes every sibling list contiguous ``1..N`` without changing relative order."""
    sections = _renumbered(
        [
            replace(
                section,
                subsections=_renumbered(
                    [
                        replace(sub, fields=_renumbered(_sorted(sub.fields)))
                        for sub in _sorted(section.subsections)
                    ]
                ),
            )
            for section in _sorted(structure.document.sections)
        ]
    )
    return _with_sections(structure, sections, section_order=True)
