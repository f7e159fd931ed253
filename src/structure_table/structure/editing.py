"""
Renaming sections and subsections, removing fields and editing field labels.

Section names key the document's ``order.sections`` and
``visibility.sections`` maps, so a rename moves those entries along with the
section. Removing a field renumbers its remaining siblings.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Sequence

from ..errors import ValidationError
from ..model import Field, FieldKey, Section, Structure, Subsection
from .levels import FieldParent, Level, as_field_key, not_found, require_parent, subsection_matches


def _renamed_keys(mapping: dict[str, Any], old: str, new: str) -> dict[str, Any]:
    # keeps the entry's position in the map
    return {(new if k == old else k): v for k, v in mapping.items()}


def _check_name(new_name: str, siblings: Sequence[str], kind: str) -> str:
    name = new_name.strip() if isinstance(new_name, str) else ""
    if not name:
        raise ValidationError(f"A {kind} name cannot be empty")
    if name in siblings:
        raise ValidationError(f"A {kind} named {name!r} already exists")
    return name


def rename(
    structure: Structure,
    level: Level | str,
    parent_id: str | None,
    item_id: str,
    new_name: str,
    *,
    strict: bool = False,
) -> Structure:
    """
    Renames a section, or a subsection of section ``parent_id``.

    Raises:
        ValidationError: the new name is empty or taken by a sibling, or a
            field rename was requested (fields are keyed by table and column).
    """
    level = Level(level)
    if level is Level.FIELD:
        raise ValidationError("Fields cannot be renamed; edit the display label instead")
    require_parent(level, parent_id)
    doc = structure.document

    if level is Level.SECTION:
        section = doc.get_section(item_id)
        if section is None:
            return not_found(structure, strict, f"Section {item_id!r} not found")
        if new_name == section.name:
            return structure
        others = [s.name for s in doc.sections if s.name != section.name]
        name = _check_name(new_name, others, "section")
        sections = tuple(replace(s, name=name) if s.name == item_id else s for s in doc.sections)
        order = replace(doc.order, sections=_renamed_keys(doc.order.sections, item_id, name))
        visibility = replace(
            doc.visibility, sections=_renamed_keys(doc.visibility.sections, item_id, name)
        )
        return replace(
            structure,
            document=replace(doc, sections=sections, order=order, visibility=visibility),
        )

    section = doc.get_section(str(parent_id))
    target = section.get_subsection(item_id) if section else None
    if section is None or target is None:
        return not_found(structure, strict, f"Subsection {parent_id!r}/{item_id!r} not found")
    if new_name == target.name:
        return structure
    others = [s.name for s in section.subsections if s.name != target.name]
    name = _check_name(new_name, others, "subsection")
    new_section = replace(
        section,
        subsections=tuple(
            replace(s, name=name) if s.name == item_id else s for s in section.subsections
        ),
    )
    sections = tuple(new_section if s.name == section.name else s for s in doc.sections)
    return replace(structure, document=replace(doc, sections=sections))


def _map_fields(
    structure: Structure,
    parent_id: FieldParent,
    key: FieldKey,
    change: Callable[[Subsection, Field], Subsection],
) -> tuple[Structure, bool]:
    found = False
    sections: list[Section] = []
    for section in structure.document.sections:
        subsections: list[Subsection] = []
        for sub in section.subsections:
            target = sub.get_field(key) if subsection_matches(parent_id, section, sub) else None
            if target is None:
                subsections.append(sub)
                continue
            found = True
            subsections.append(change(sub, target))
        sections.append(replace(section, subsections=tuple(subsections)))
    doc = replace(structure.document, sections=tuple(sections))
    return replace(structure, document=doc), found


def remove_field(
    structure: Structure,
    parent_id: FieldParent,
    item_id: FieldKey | tuple[str, str] | str,
    *,
    strict: bool = False,
) -> Structure:
    """
    Drops a field from its subsection and renumbers the rest ``1..N``.

    The subsection's ``tables`` list is left alone; a table with no remaining
    fields stays listed.
    """
    require_parent(Level.FIELD, parent_id)
    key = as_field_key(item_id)

    def drop(sub: Subsection, target: Field) -> Subsection:
        rest = sorted((f for f in sub.fields if f.key != key), key=lambda f: f.order)
        return replace(
            sub,
            fields=tuple(
                f if f.order == pos else replace(f, order=pos)
                for pos, f in enumerate(rest, start=1)
            ),
        )

    updated, found = _map_fields(structure, parent_id, key, drop)
    if not found:
        return not_found(structure, strict, f"Field {key} under {parent_id!r} not found")
    return updated


def edit_field(
    structure: Structure,
    parent_id: FieldParent,
    item_id: FieldKey | tuple[str, str] | str,
    *,
    display: str | None = None,
    dropdown_options: Sequence[Any] | None = None,
    strict: bool = False,
) -> Structure:
    """Changes a field's display label and/or its dropdown options."""
    require_parent(Level.FIELD, parent_id)
    key = as_field_key(item_id)
    if display is not None and not display.strip():
        raise ValidationError(f"Display label for {key} cannot be empty")

    def apply(sub: Subsection, target: Field) -> Subsection:
        changes: dict[str, Any] = {}
        if display is not None:
            changes["display"] = display.strip()
        if dropdown_options is not None:
            changes["dropdown_options"] = tuple(dropdown_options)
        edited = replace(target, **changes)
        return replace(sub, fields=tuple(edited if f.key == key else f for f in sub.fields))

    updated, found = _map_fields(structure, parent_id, key, apply)
    if not found:
        return not_found(structure, strict, f"Field {key} under {parent_id!r} not found")
    if updated == structure:
        return structure
    return updated
