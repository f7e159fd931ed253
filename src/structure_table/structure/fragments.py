from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from ..errors import ValidationError
from ..model import Field, FieldKey, Section, Structure, Subsection


@dataclass(frozen=True)
class StructureFragment:
    """A partial structure produced by the table/field pickers."""

    table_names: tuple[str, ...]
    column_mappings: dict[FieldKey, str]  # key -> display label, in selection order
    dropdown_options: dict[FieldKey, tuple[str, ...]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "table_names": list(self.table_names),
            "column_mappings": {str(k): v for k, v in self.column_mappings.items()},
        }
        if self.dropdown_options:
            out["dropdownOptions"] = {str(k): list(v) for k, v in self.dropdown_options.items()}
        return out


def default_label(column: str) -> str:
    """``company_name`` -> ``Company Name``."""
    return " ".join(part.capitalize() for part in column.replace("-", "_").split("_") if part)


def build_fragment(
    pairs: Iterable[tuple[str, str] | FieldKey],
    *,
    labels: dict[FieldKey, str] | None = None,
    dropdown_options: dict[FieldKey, list[str]] | None = None,
) -> StructureFragment:
    """
    Builds a fragment from selected ``(table, field)`` pairs.

    Duplicate pairs are collapsed; table names keep first-selection order.
    """
    labels = labels or {}
    dropdown_options = dropdown_options or {}
    tables: dict[str, None] = {}
    mappings: dict[FieldKey, str] = {}
    for i, pair in enumerate(pairs):
        if not isinstance(pair, (tuple, list)) or len(pair) != 2:
            raise ValidationError(f"selection[{i}] must be a (table, field) pair")
        table, name = pair
        if not isinstance(table, str) or not table:
            raise ValidationError(f"selection[{i}] is missing 'table'")
        if not isinstance(name, str) or not name:
            raise ValidationError(f"selection[{i}] is missing 'name'")
        key = FieldKey(table, name)
        tables.setdefault(table, None)
        mappings.setdefault(key, labels.get(key) or default_label(name))
    if not mappings:
        raise ValidationError("Selection is empty")
    return StructureFragment(
        table_names=tuple(tables),
        column_mappings=mappings,
        dropdown_options={
            k: tuple(v) for k, v in dropdown_options.items() if k in mappings and v
        },
    )


def fragment_from_dict(raw: Any) -> StructureFragment:
    """Parses ``{table_names, column_mappings: {"table.field": label}}``."""
    if not isinstance(raw, dict):
        raise ValidationError("Fragment must be a mapping")
    mappings_raw = raw.get("column_mappings")
    if not isinstance(mappings_raw, dict) or not mappings_raw:
        raise ValidationError("fragment.column_mappings must be a non-empty mapping")

    labels: dict[FieldKey, str] = {}
    for ref, label in mappings_raw.items():
        key = FieldKey.parse(ref)
        labels[key] = label if isinstance(label, str) and label else default_label(key.name)

    dropdowns_raw = raw.get("dropdownOptions") or {}
    if not isinstance(dropdowns_raw, dict):
        raise ValidationError("fragment.dropdownOptions must be a mapping if provided")
    dropdowns = {FieldKey.parse(k): list(v) for k, v in dropdowns_raw.items()}

    fragment = build_fragment(list(labels), labels=labels, dropdown_options=dropdowns)
    declared = raw.get("table_names")
    if declared is not None:
        if not isinstance(declared, list):
            raise ValidationError("fragment.table_names must be a list if provided")
        merged = dict.fromkeys(list(declared) + list(fragment.table_names))
        fragment = replace(fragment, table_names=tuple(merged))
    return fragment


def _next_order(items: Iterable[Any]) -> int:
    return max((item.order for item in items), default=0) + 1


def merge_fragment(
    structure: Structure,
    fragment: StructureFragment,
    *,
    section: str,
    subsection: str,
) -> Structure:
    """
    Merges a fragment into ``section``/``subsection``, creating either if needed.

    New sections, subsections and fields are appended after their siblings.
    Fields already bound in the target subsection are left as they are; the
    subsection's ``tables`` list is extended to cover every fragment table.
    """
    if not section or not subsection:
        raise ValidationError("Both section and subsection names are required")

    doc = structure.document
    target_section = doc.get_section(section)
    if target_section is None:
        target_section = Section(name=section, order=_next_order(doc.sections))
    target_sub = target_section.get_subsection(subsection)
    if target_sub is None:
        target_sub = Subsection(name=subsection, order=_next_order(target_section.subsections))

    fields = list(target_sub.fields)
    existing = {f.key for f in fields}
    next_order = _next_order(fields)
    for key, label in fragment.column_mappings.items():
        if key in existing:
            continue
        fields.append(
            Field(
                name=key.name,
                table=key.table,
                display=label,
                order=next_order,
                dropdown_options=fragment.dropdown_options.get(key, ()),
            )
        )
        existing.add(key)
        next_order += 1

    tables = dict.fromkeys(list(target_sub.tables) + list(fragment.table_names))
    for f in fields:
        tables.setdefault(f.table, None)
    new_sub = replace(target_sub, fields=tuple(fields), tables=tuple(tables))

    if target_section.get_subsection(subsection) is None:
        subs = target_section.subsections + (new_sub,)
    else:
        subs = tuple(new_sub if s.name == subsection else s for s in target_section.subsections)
    new_section = replace(target_section, subsections=subs)

    if doc.get_section(section) is None:
        sections = doc.sections + (new_section,)
        order = replace(doc.order, sections={**doc.order.sections, section: new_section.order})
        visibility = replace(doc.visibility, sections={**doc.visibility.sections, section: True})
        doc = replace(doc, sections=sections, order=order, visibility=visibility)
    else:
        doc = replace(
            doc, sections=tuple(new_section if s.name == section else s for s in doc.sections)
        )
    return replace(structure, document=doc)
