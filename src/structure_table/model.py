from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterator, NamedTuple

from .errors import StructureConfigError, ValidationError


class FieldKey(NamedTuple):
    """Composite identity of a field: the physical table and its column name."""

    table: str
    name: str

    def __str__(self) -> str:
        return f"{self.table}.{self.name}"

    @classmethod
    def parse(cls, text: str) -> "FieldKey":
        """Parses the ``"table.name"`` display form. Only the first dot separates."""
        table, sep, name = text.partition(".")
        if not sep or not table or not name:
            raise ValidationError(f"Field reference must look like 'table.column': {text!r}")
        return cls(table, name)


@dataclass(frozen=True)
class Verification:
    is_verified: bool = False
    verified_at: str | None = None
    verified_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_verified": self.is_verified,
            "verified_at": self.verified_at,
            "verified_by": self.verified_by,
        }


@dataclass(frozen=True)
class FieldConfig:
    """Per-field cell behaviour. Only written out when the document carried it."""

    editable: bool = False
    update_on_change: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.extra)
        out["editable"] = self.editable
        out["updateOnChange"] = self.update_on_change
        return out


@dataclass(frozen=True)
class Field:
    name: str
    table: str
    display: str
    order: int = 0
    visible: bool = True
    dropdown_options: tuple[Any, ...] = ()
    verification: Verification = field(default_factory=Verification)
    type: str | None = None  # text/number/date/select/checkbox
    config: FieldConfig | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    # wire keys the source document left out; written back only once they change
    absent: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    @property
    def key(self) -> FieldKey:
        return FieldKey(self.table, self.name)

    @property
    def editable(self) -> bool:
        return bool(self.config and self.config.editable)

    @property
    def update_on_change(self) -> bool:
        return bool(self.config and self.config.update_on_change)


@dataclass(frozen=True)
class Subsection:
    name: str
    order: int = 0
    visible: bool = True
    fields: tuple[Field, ...] = ()
    tables: tuple[str, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)
    absent: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    def get_field(self, key: FieldKey) -> Field | None:
        for f in self.fields:
            if f.key == key:
                return f
        return None


@dataclass(frozen=True)
class Section:
    name: str
    order: int = 0
    visible: bool = True
    subsections: tuple[Subsection, ...] = ()
    tab: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    absent: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    def get_subsection(self, name: str) -> Subsection | None:
        for s in self.subsections:
            if s.name == name:
                return s
        return None


@dataclass(frozen=True)
class StructureOrder:
    tab: int = 1
    sections: dict[str, int] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    absent: frozenset[str] = field(default=frozenset(), compare=False, repr=False)


@dataclass(frozen=True)
class StructureVisibility:
    tab: bool = True
    sections: dict[str, bool] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    absent: frozenset[str] = field(default=frozenset(), compare=False, repr=False)


@dataclass(frozen=True)
class StructureDocument:
    """The JSON document held in the ``structure`` column."""

    sections: tuple[Section, ...] = ()
    order: StructureOrder = field(default_factory=StructureOrder)
    visibility: StructureVisibility = field(default_factory=StructureVisibility)
    relationships: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    absent: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    def get_section(self, name: str) -> Section | None:
        for s in self.sections:
            if s.name == name:
                return s
        return None

    def iter_fields(self) -> Iterator[tuple[Section, Subsection, Field]]:
        for section in self.sections:
            for subsection in section.subsections:
                for f in subsection.fields:
                    yield section, subsection, f

    def find_field(self, key: FieldKey) -> Field | None:
        for _, _, f in self.iter_fields():
            if f.key == key:
                return f
        return None

    @property
    def tables(self) -> list[str]:
        """All physical tables referenced by fields, in first-seen order."""
        seen: dict[str, None] = {}
        for _, subsection, f in self.iter_fields():
            for t in subsection.tables:
                seen.setdefault(t, None)
            seen.setdefault(f.table, None)
        return list(seen)


@dataclass(frozen=True)
class Structure:
    """One row of the structure mapping table: a (main-tab, sub-tab) layout."""

    id: Any
    main_tab: str
    sub_tab: str
    document: StructureDocument = field(default_factory=StructureDocument)
    updated_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.main_tab, self.sub_tab)

    @property
    def sections(self) -> tuple[Section, ...]:
        return self.document.sections


# ========================
# WIRE FORMAT
# ========================

_FIELD_KEYS = {
    "name", "order", "table", "display", "visible",
    "verification", "dropdownOptions", "type", "config",
}
_SUBSECTION_KEYS = {"name", "order", "visible", "tables", "fields"}
_SECTION_KEYS = {"name", "order", "visible", "subsections", "tab"}
_DOCUMENT_KEYS = {"order", "sections", "visibility", "relationships"}
_ROW_KEYS = {"id", "main_tab", "Tabs", "structure", "updated_at"}


def _require_mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise StructureConfigError(f"{where} must be a mapping")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise StructureConfigError(f"{where} must be a list if provided")
    return value


def _require_name(raw: dict[str, Any], where: str) -> str:
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise StructureConfigError(f"{where}.name must be a non-empty string")
    return name


def _extras(raw: dict[str, Any], known: set[str]) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in known}


def _absent(raw: dict[str, Any], keys: set[str]) -> frozenset[str]:
    return frozenset(k for k in keys if k not in raw)


def _int(value: Any, default: int, where: str) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise StructureConfigError(f"{where} must be an integer, got {value!r}") from e


def _omit_defaults(out: dict[str, Any], absent: frozenset[str], defaults: dict[str, Any]) -> dict[str, Any]:
    for k in absent:
        if k in out and out[k] == defaults[k]:
            del out[k]
    return out


def field_from_dict(raw: Any, where: str = "field") -> Field:
    raw = _require_mapping(raw, where)
    name = _require_name(raw, where)
    table = raw.get("table")
    if not isinstance(table, str) or not table:
        raise StructureConfigError(f"{where}.table must be a non-empty string")

    ver_raw = raw.get("verification") or {}
    if not isinstance(ver_raw, dict):
        raise StructureConfigError(f"{where}.verification must be a mapping if provided")

    config: FieldConfig | None = None
    if raw.get("config") is not None:
        cfg = _require_mapping(raw["config"], f"{where}.config")
        config = FieldConfig(
            editable=bool(cfg.get("editable", False)),
            update_on_change=bool(cfg.get("updateOnChange", False)),
            extra=_extras(cfg, {"editable", "updateOnChange"}),
        )

    return Field(
        name=name,
        table=table,
        display=raw.get("display") or name,
        order=_int(raw.get("order"), 0, f"{where}.order"),
        visible=bool(raw.get("visible", True)),
        dropdown_options=tuple(_require_list(raw.get("dropdownOptions"), f"{where}.dropdownOptions")),
        verification=Verification(
            is_verified=bool(ver_raw.get("is_verified", False)),
            verified_at=ver_raw.get("verified_at"),
            verified_by=ver_raw.get("verified_by"),
        ),
        type=raw.get("type"),
        config=config,
        extra=_extras(raw, _FIELD_KEYS),
        absent=_absent(raw, {"order", "display", "visible", "verification", "dropdownOptions"}),
    )


def subsection_from_dict(raw: Any, where: str = "subsection") -> Subsection:
    raw = _require_mapping(raw, where)
    name = _require_name(raw, where)
    fields = tuple(
        field_from_dict(f, f"{where}.fields[{i}]")
        for i, f in enumerate(_require_list(raw.get("fields"), f"{where}.fields"))
    )
    return Subsection(
        name=name,
        order=_int(raw.get("order"), 0, f"{where}.order"),
        visible=bool(raw.get("visible", True)),
        fields=fields,
        tables=tuple(_require_list(raw.get("tables"), f"{where}.tables")),
        extra=_extras(raw, _SUBSECTION_KEYS),
        absent=_absent(raw, {"order", "visible", "tables", "fields"}),
    )


def section_from_dict(raw: Any, where: str = "section") -> Section:
    raw = _require_mapping(raw, where)
    name = _require_name(raw, where)
    subsections = tuple(
        subsection_from_dict(s, f"{where}.subsections[{i}]")
        for i, s in enumerate(_require_list(raw.get("subsections"), f"{where}.subsections"))
    )
    return Section(
        name=name,
        order=_int(raw.get("order"), 0, f"{where}.order"),
        visible=bool(raw.get("visible", True)),
        subsections=subsections,
        tab=raw.get("tab"),
        extra=_extras(raw, _SECTION_KEYS),
        absent=_absent(raw, {"order", "visible", "subsections"}),
    )


def document_from_dict(raw: Any) -> StructureDocument:
    raw = _require_mapping(raw, "structure")

    order_raw = _require_mapping(raw.get("order") or {}, "structure.order")
    vis_raw = _require_mapping(raw.get("visibility") or {}, "structure.visibility")
    relationships = _require_mapping(raw.get("relationships") or {}, "structure.relationships")

    sections = tuple(
        section_from_dict(s, f"structure.sections[{i}]")
        for i, s in enumerate(_require_list(raw.get("sections"), "structure.sections"))
    )

    return StructureDocument(
        sections=sections,
        order=StructureOrder(
            # a stored 0 stays 0 so validation can report it
            tab=_int(order_raw.get("tab"), 1, "structure.order.tab"),
            sections=dict(order_raw.get("sections") or {}),
            extra=_extras(order_raw, {"tab", "sections"}),
            absent=_absent(order_raw, {"tab", "sections"}),
        ),
        visibility=StructureVisibility(
            tab=bool(vis_raw.get("tab", True)),
            sections=dict(vis_raw.get("sections") or {}),
            extra=_extras(vis_raw, {"tab", "sections"}),
            absent=_absent(vis_raw, {"tab", "sections"}),
        ),
        relationships=dict(relationships),
        extra=_extras(raw, _DOCUMENT_KEYS),
        absent=_absent(raw, _DOCUMENT_KEYS),
    )


def structure_from_dict(raw: Any) -> Structure:
    """Parses one structure mapping row (``{id, main_tab, Tabs, structure, ...}``)."""
    raw = _require_mapping(raw, "structure row")
    main_tab = raw.get("main_tab")
    if not isinstance(main_tab, str) or not main_tab:
        raise StructureConfigError("structure row main_tab must be a non-empty string")
    sub_tab = raw.get("Tabs")
    if not isinstance(sub_tab, str) or not sub_tab:
        raise StructureConfigError("structure row Tabs must be a non-empty string")

    doc_raw = raw.get("structure")
    if isinstance(doc_raw, str):
        # some rows store the document as serialized JSON text
        try:
            doc_raw = json.loads(doc_raw)
        except ValueError as e:
            raise StructureConfigError(
                f"structure for {main_tab}/{sub_tab} is not valid JSON"
            ) from e

    return Structure(
        id=raw.get("id"),
        main_tab=main_tab,
        sub_tab=sub_tab,
        document=document_from_dict(doc_raw or {}),
        updated_at=raw.get("updated_at"),
        extra=_extras(raw, _ROW_KEYS),
    )


_DEFAULT_VERIFICATION = Verification().to_dict()


def field_to_dict(f: Field) -> dict[str, Any]:
    out: dict[str, Any] = {
        "name": f.name,
        "order": f.order,
        "table": f.table,
        "display": f.display,
        "visible": f.visible,
        "verification": f.verification.to_dict(),
        "dropdownOptions": list(f.dropdown_options),
    }
    if f.type is not None:
        out["type"] = f.type
    if f.config is not None:
        out["config"] = f.config.to_dict()
    out.update(f.extra)
    return _omit_defaults(
        out,
        f.absent,
        {
            "order": 0,
            "display": f.name,
            "visible": True,
            "verification": _DEFAULT_VERIFICATION,
            "dropdownOptions": [],
        },
    )


def subsection_to_dict(s: Subsection) -> dict[str, Any]:
    out: dict[str, Any] = {
        "name": s.name,
        "order": s.order,
        "visible": s.visible,
        "tables": list(s.tables),
        "fields": [field_to_dict(f) for f in s.fields],
    }
    out.update(s.extra)
    return _omit_defaults(
        out, s.absent, {"order": 0, "visible": True, "tables": [], "fields": []}
    )


def section_to_dict(s: Section) -> dict[str, Any]:
    out: dict[str, Any] = {
        "name": s.name,
        "order": s.order,
        "visible": s.visible,
        "subsections": [subsection_to_dict(sub) for sub in s.subsections],
    }
    if s.tab is not None:
        out["tab"] = s.tab
    out.update(s.extra)
    return _omit_defaults(out, s.absent, {"order": 0, "visible": True, "subsections": []})


def document_to_dict(doc: StructureDocument) -> dict[str, Any]:
    order = {"tab": doc.order.tab, "sections": dict(doc.order.sections)}
    order.update(doc.order.extra)
    _omit_defaults(order, doc.order.absent, {"tab": 1, "sections": {}})
    visibility = {"tab": doc.visibility.tab, "sections": dict(doc.visibility.sections)}
    visibility.update(doc.visibility.extra)
    _omit_defaults(visibility, doc.visibility.absent, {"tab": True, "sections": {}})
    out: dict[str, Any] = {
        "order": order,
        "sections": [section_to_dict(s) for s in doc.sections],
        "visibility": visibility,
        "relationships": dict(doc.relationships),
    }
    out.update(doc.extra)
    return _omit_defaults(
        out,
        doc.absent,
        {"order": {}, "sections": [], "visibility": {}, "relationships": {}},
    )


def structure_to_dict(structure: Structure) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": structure.id,
        "main_tab": structure.main_tab,
        "Tabs": structure.sub_tab,
        "structure": document_to_dict(structure.document),
    }
    if structure.updated_at is not None:
        out["updated_at"] = structure.updated_at
    out.update(structure.extra)
    return out
