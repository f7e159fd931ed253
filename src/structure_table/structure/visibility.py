"""
Visibility toggles with downward cascade.

Hiding or showing a section sets every subsection and field beneath it to the
same value; a subsection does the same for its fields. Nothing cascades
upward: a field shown under a hidden subsection keeps ``visible=True`` but is
not rendered until the ancestor is shown again.
"""

from __future__ import annotations

from dataclasses import replace

from ..model import Field, FieldKey, Section, Structure, Subsection
from .levels import FieldParent, Level, as_field_key, not_found, require_parent, subsection_matches


def _cascade_subsection(subsection: Subsection, visible: bool) -> Subsection:
    return replace(
        subsection,
        visible=visible,
        fields=tuple(replace(f, visible=visible) for f in subsection.fields),
    )


def _cascade_section(section: Section, visible: bool) -> Section:
    return replace(
        section,
        visible=visible,
        subsections=tuple(_cascade_subsection(s, visible) for s in section.subsections),
    )


def _with_sections(
    structure: Structure,
    sections: tuple[Section, ...],
    section_visibility: dict[str, bool] | None = None,
) -> Structure:
    doc = structure.document
    visibility = doc.visibility
    if section_visibility:
        visibility = replace(visibility, sections={**visibility.sections, **section_visibility})
    return replace(structure, document=replace(doc, sections=sections, visibility=visibility))


def toggle(
    structure: Structure,
    level: Level | str,
    parent_id: FieldParent | None,
    item_id: str | FieldKey | tuple[str, str],
    *,
    strict: bool = False,
) -> Structure:
    """
    Flips the visibility of one section, subsection or field.

    Args:
        level: "section", "subsection" or "field".
        parent_id: Ignored for sections; the section name for subsections; the
                   subsection name (or a (section, subsection) tuple) for fields.
        item_id: Section/subsection name, or a FieldKey for fields.
        strict: Raise NotFoundError for unknown ids instead of returning the
                structure unchanged.

    Raises:
        ValidationError: a subsection or field was given without its parent.
    """
    level = Level(level)
    require_parent(level, parent_id)
    doc = structure.document

    if level is Level.SECTION:
        section = doc.get_section(str(item_id))
        if section is None:
            return not_found(structure, strict, f"Section {item_id!r} not found")
        new_value = not section.visible
        sections = tuple(
            _cascade_section(s, new_value) if s.name == section.name else s
            for s in doc.sections
        )
        return _with_sections(structure, sections, {section.name: new_value})

    if level is Level.SUBSECTION:
        section = doc.get_section(str(parent_id))
        target = section.get_subsection(str(item_id)) if section else None
        if section is None or target is None:
            return not_found(
                structure, strict, f"Subsection {parent_id!r}/{item_id!r} not found"
            )
        new_section = replace(
            section,
            subsections=tuple(
                _cascade_subsection(s, not s.visible) if s.name == target.name else s
                for s in section.subsections
            ),
        )
        sections = tuple(new_section if s.name == section.name else s for s in doc.sections)
        return _with_sections(structure, sections)

    key = as_field_key(item_id)
    found = False

    def flip(f: Field) -> Field:
        nonlocal found
        if f.key != key:
            return f
        found = True
        return replace(f, visible=not f.visible)

    sections = tuple(
        replace(
            section,
            subsections=tuple(
                replace(sub, fields=tuple(flip(f) for f in sub.fields))
                if subsection_matches(parent_id, section, sub)
                else sub
                for sub in section.subsections
            ),
        )
        for section in doc.sections
    )
    if not found:
        return not_found(structure, strict, f"Field {key} under {parent_id!r} not found")
    return _with_sections(structure, sections)


def set_all(structure: Structure, visible: bool) -> Structure:
    """Shows or hides every section, subsection and field."""
    sections = tuple(_cascade_section(s, visible) for s in structure.document.sections)
    return _with_sections(structure, sections, {s.name: visible for s in sections})


def is_effectively_visible(section: Section, subsection: Subsection, field: Field) -> bool:
    return section.visible and subsection.visible and field.visible
