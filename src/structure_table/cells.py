"""
CellEngine: per-type formatting and parsing, the cell edit state machine, and
routing of committed edits back to their source table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

import pandas as pd

from .backend import Backend, Record
from .errors import NotFoundError, PersistenceError, ValidationError
from .model import Field, FieldKey, Structure
from .rows import join_for

logger = logging.getLogger(__name__)

CHECKED = "✓"
UNCHECKED = "✗"

_FALSE_STRINGS = {"", "0", "false", "no", "n", "off"}


def _blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


@dataclass(frozen=True)
class TextType:
    name = "text"

    def format(self, value: Any) -> str:
        return "" if value is None else str(value)

    def parse(self, raw: Any) -> Any:
        return None if raw is None else str(raw)


@dataclass(frozen=True)
class NumberType:
    name = "number"

    def format(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def parse(self, raw: Any) -> int | float | None:
        if _blank(raw):
            return None
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return raw
        text = str(raw).strip().replace(",", "")
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise ValidationError(f"Not a number: {raw!r}") from None


@dataclass(frozen=True)
class DateType:
    name = "date"

    def format(self, value: Any) -> str:
        if value is None or value == "":
            return ""
        try:
            return pd.to_datetime(value).strftime("%x")
        except (ValueError, TypeError, OverflowError):
            return str(value)

    def parse(self, raw: Any) -> str | None:
        """Stores dates as ISO ``YYYY-MM-DD``."""
        if _blank(raw):
            return None
        try:
            return pd.to_datetime(raw).date().isoformat()
        except (ValueError, TypeError, OverflowError):
            raise ValidationError(f"Not a date: {raw!r}") from None


@dataclass(frozen=True)
class SelectType:
    options: tuple[Any, ...] = ()
    name = "select"

    def _pairs(self) -> list[tuple[Any, str]]:
        pairs = []
        for opt in self.options:
            if isinstance(opt, dict):
                value = opt.get("value")
                pairs.append((value, str(opt.get("label", value))))
            else:
                pairs.append((opt, str(opt)))
        return pairs

    def format(self, value: Any) -> str:
        if value is None:
            return ""
        for opt_value, label in self._pairs():
            if opt_value == value:
                return label
        return str(value)

    def parse(self, raw: Any) -> Any:
        """Accepts an option value or its label and returns the value."""
        if _blank(raw):
            return None
        pairs = self._pairs()
        for opt_value, label in pairs:
            if raw == opt_value or raw == label:
                return opt_value
        if not pairs:
            return raw
        raise ValidationError(
            f"{raw!r} is not one of: {', '.join(label for _, label in pairs)}"
        )


@dataclass(frozen=True)
class CheckboxType:
    name = "checkbox"

    def format(self, value: Any) -> str:
        return CHECKED if self.parse(value) else UNCHECKED

    def parse(self, raw: Any) -> bool:
        if isinstance(raw, str):
            return raw.strip().lower() not in _FALSE_STRINGS
        return bool(raw)


FieldType = Union[TextType, NumberType, DateType, SelectType, CheckboxType]

_SIMPLE_TYPES: dict[str, FieldType] = {
    "text": TextType(),
    "number": NumberType(),
    "date": DateType(),
    "checkbox": CheckboxType(),
    "boolean": CheckboxType(),
}


def field_type(f: Field) -> FieldType:
    """Explicit ``type`` wins; otherwise a field with options is a select."""
    if f.type == "select" or (f.type is None and f.dropdown_options):
        return SelectType(tuple(f.dropdown_options))
    if f.type is None:
        return TextType()
    try:
        return _SIMPLE_TYPES[f.type]
    except KeyError:
        logger.debug("Unknown field type %r on %s; treating as text", f.type, f.key)
        return TextType()


def format_value(f: Field, value: Any) -> str:
    return field_type(f).format(value)


# ========================
# EDIT STATE MACHINE
# ========================


@dataclass(frozen=True)
class UpdateIntent:
    row_id: Any
    field_key: FieldKey
    value: Any
    record_id: Any = None  # child record id for fields of a many relationship


class CellState(str, Enum):
    DISPLAY = "display"
    EDIT = "edit"


@dataclass
class Cell:
    """
    One editable cell.

    ``begin_edit`` only enters EDIT for editable fields. A field configured
    with ``updateOnChange`` emits an ``UpdateIntent`` on every ``change``;
    any other field emits once on ``commit`` if the value changed. ``blur``
    commits like leaving the input does; ``cancel`` drops the draft.

    Cells of a child row set ``record_id`` to the child record's id.
    """

    row_id: Any
    field: Field
    value: Any = None
    on_update: Callable[[UpdateIntent], None] | None = None
    state: CellState = CellState.DISPLAY
    draft: Any = None
    record_id: Any = None

    @property
    def type(self) -> FieldType:
        return field_type(self.field)

    def display(self) -> str:
        return self.type.format(self.value)

    def begin_edit(self) -> bool:
        if not self.field.editable:
            logger.debug("Field %s is not editable", self.field.key)
            return False
        self.state = CellState.EDIT
        self.draft = self.value
        return True

    def _emit(self, value: Any) -> UpdateIntent:
        intent = UpdateIntent(
            row_id=self.row_id, field_key=self.field.key, value=value, record_id=self.record_id
        )
        if self.on_update is not None:
            self.on_update(intent)
        return intent

    def change(self, raw: Any) -> UpdateIntent | None:
        if self.state is not CellState.EDIT:
            raise ValidationError(f"Cell {self.field.key} is not being edited")
        self.draft = self.type.parse(raw)
        if self.field.update_on_change:
            self.value = self.draft
            return self._emit(self.draft)
        return None

    def commit(self) -> UpdateIntent | None:
        if self.state is not CellState.EDIT:
            return None
        self.state = CellState.DISPLAY
        if self.draft == self.value:
            return None
        self.value = self.draft
        return self._emit(self.value)

    def blur(self) -> UpdateIntent | None:
        return self.commit()

    def cancel(self) -> None:
        self.state = CellState.DISPLAY
        self.draft = None


# ========================
# INTENT ROUTING
# ========================


def apply_intent(
    backend: Backend,
    structure: Structure,
    intent: UpdateIntent,
    *,
    entity: Record | None = None,
    entity_key: str = "id",
) -> str:
    """
    Writes an edit to the field's source table.

    The record is found through the table's relationship: its ``local_key``
    column must equal the entity's ``entity_key`` value (``entity`` when given,
    else ``intent.row_id``). When no record matches one is inserted.

    For a ``many`` relationship the edit must come from a child row: the
    record is located by ``intent.record_id`` alone. A parent-row edit is only
    accepted while the entity has no related records yet, and inserts the
    first one.

    Returns ``"updated"`` or ``"inserted"``.

    Raises:
        NotFoundError: the field is not in the structure, or the child record
            no longer exists.
        ValidationError: the edit cannot be routed to a single record.
    """
    f = structure.document.find_field(intent.field_key)
    if f is None:
        raise NotFoundError(f"Field {intent.field_key} not found in {structure.key}")

    join = join_for(structure, f.table, entity_key=entity_key)
    patch = {f.name: intent.value}

    if join.many and intent.record_id is not None:
        count = _write(backend, intent, lambda: backend.update(f.table, intent.record_id, patch))
        if not count:
            raise NotFoundError(f"No {f.table} record with id={intent.record_id!r}")
        logger.info("Updated %s.%s where id=%r", f.table, f.name, intent.record_id)
        return "updated"

    join_value = entity.get(join.entity_key) if entity is not None else intent.row_id
    if join_value is None:
        raise ValidationError(f"No {join.entity_key!r} value to locate a {f.table} record")

    if join.many:
        related = _write(backend, intent, lambda: backend.fetch(f.table, {join.local_key: join_value}))
        if related:
            raise ValidationError(
                f"{intent.field_key} has {len(related)} record(s) for {join.local_key}={join_value!r}; "
                "edit it from the child row"
            )
    else:
        count = _write(
            backend, intent, lambda: backend.update(f.table, join_value, patch, key=join.local_key)
        )
        if count:
            logger.info("Updated %s.%s where %s=%r", f.table, f.name, join.local_key, join_value)
            return "updated"

    _write(backend, intent, lambda: backend.insert(f.table, {join.local_key: join_value, **patch}))
    logger.info("Inserted %s record for %s=%r", f.table, join.local_key, join_value)
    return "inserted"


def _write(backend: Backend, intent: UpdateIntent, call: Callable[[], Any]) -> Any:
    try:
        return call()
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(f"Failed to write {intent.field_key}") from e
