"""
StructureStore: load, persist and publish structure documents.

Consumers that need to react to structure changes (render plans, row
assemblers) subscribe to the store instead of listening on a global event bus.

Concurrency: one writer per structure is assumed. There is no version check on
``save``, so two operators editing the same structure concurrently lose
updates on a last-write-wins basis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from .backend import Backend
from .errors import NotFoundError, PersistenceError, StructureConfigError, ValidationError
from .model import Structure, document_to_dict, structure_from_dict, structure_to_dict

logger = logging.getLogger(__name__)

DEFAULT_STRUCTURE_TABLE = "structure_mapping"


@dataclass(frozen=True)
class StructureEvent:
    kind: str  # loaded/saved/created
    structure: Structure


Subscriber = Callable[[StructureEvent], None]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def filter_by_active_tab(structure: Structure, active_main_tab: str) -> Structure:
    """
    Keeps only the sections tagged for ``active_main_tab``.

    Untagged sections belong to the structure's own main tab. Order numbers are
    left as they are, so the filtered view may have gaps.
    """
    sections = tuple(
        s for s in structure.document.sections
        if (s.tab if s.tab is not None else structure.main_tab) == active_main_tab
    )
    return replace(structure, document=replace(structure.document, sections=sections))


class StructureStore:
    def __init__(
        self,
        backend: Backend,
        *,
        table: str = DEFAULT_STRUCTURE_TABLE,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        self.backend = backend
        self.table = table
        self._clock = clock
        self._persisted: dict[object, Structure] = {}
        self._subscribers: list[Subscriber] = []

    # ---- change channel ----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Registers ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, kind: str, structure: Structure) -> None:
        event = StructureEvent(kind=kind, structure=structure)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Structure subscriber failed on %s event", kind)

    # ---- reads ----

    def _fetch(self, filters: dict[str, object]) -> list[Structure]:
        try:
            rows = self.backend.fetch(self.table, filters)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read {self.table}") from e

        structures: list[Structure] = []
        for row in rows:
            try:
                structures.append(structure_from_dict(row))
            except StructureConfigError as e:
                raise StructureConfigError(
                    f"{self.table} row id={row.get('id')!r}: {e}"
                ) from e
        return structures

    def load(self, main_tab: str) -> list[Structure]:
        """All structures of a main tab, ordered by tab order then sub-tab name."""
        structures = self._fetch({"main_tab": main_tab})
        structures.sort(key=lambda s: (s.document.order.tab, s.sub_tab))
        for s in structures:
            self._persisted[s.id] = s
            self._publish("loaded", s)
        logger.debug("Loaded %d structure(s) for main tab %r", len(structures), main_tab)
        return structures

    def get(self, main_tab: str, sub_tab: str) -> Structure:
        matches = self._fetch({"main_tab": main_tab, "Tabs": sub_tab})
        if not matches:
            raise NotFoundError(f"No structure for {main_tab!r}/{sub_tab!r}")
        structure = matches[0]
        self._persisted[structure.id] = structure
        return structure

    def last_persisted(self, structure_id: object) -> Structure | None:
        return self._persisted.get(structure_id)

    # ---- writes ----

    def save(self, structure: Structure) -> Structure:
        """
        Persists ``structure`` and stamps ``updated_at``.

        Raises:
            PersistenceError: the backend write failed or matched no row. The
                last persisted snapshot is left untouched.
        """
        stamped = replace(structure, updated_at=self._clock())
        patch = {
            "structure": document_to_dict(stamped.document),
            "updated_at": stamped.updated_at,
        }
        try:
            count = self.backend.update(self.table, structure.id, patch)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save structure id={structure.id!r}") from e
        if not count:
            raise PersistenceError(f"Structure id={structure.id!r} does not exist in {self.table}")

        self._persisted[stamped.id] = stamped
        logger.info("Saved structure %s/%s (id=%r)", stamped.main_tab, stamped.sub_tab, stamped.id)
        self._publish("saved", stamped)
        return stamped

    def rename_tab(self, main_tab: str, sub_tab: str, new_name: str) -> Structure:
        """
        Renames a sub-tab (the row's ``Tabs`` column).

        Raises:
            NotFoundError: no structure for ``main_tab``/``sub_tab``.
            ValidationError: the new name is empty or already used in the main tab.
        """
        structure = self.get(main_tab, sub_tab)
        name = new_name.strip() if isinstance(new_name, str) else ""
        if not name:
            raise ValidationError("A tab name cannot be empty")
        if name == sub_tab:
            return structure
        if self._fetch({"main_tab": main_tab, "Tabs": name}):
            raise ValidationError(f"Tab {main_tab!r}/{name!r} already exists")

        renamed = replace(structure, sub_tab=name, updated_at=self._clock())
        try:
            count = self.backend.update(
                self.table, structure.id, {"Tabs": name, "updated_at": renamed.updated_at}
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to rename tab {main_tab!r}/{sub_tab!r}") from e
        if not count:
            raise PersistenceError(f"Structure id={structure.id!r} does not exist in {self.table}")

        self._persisted[renamed.id] = renamed
        logger.info("Renamed tab %s/%s to %r", main_tab, sub_tab, name)
        self._publish("saved", renamed)
        return renamed

    def create(self, structure: Structure) -> Structure:
        """Administrative insert of a new (main-tab, sub-tab) structure."""
        existing = self._fetch({"main_tab": structure.main_tab, "Tabs": structure.sub_tab})
        if existing:
            raise PersistenceError(
                f"Structure {structure.main_tab!r}/{structure.sub_tab!r} already exists"
            )
        row = structure_to_dict(replace(structure, updated_at=self._clock()))
        if row.get("id") is None:
            row.pop("id")
        try:
            inserted = self.backend.insert(self.table, row)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError("Failed to create structure") from e
        created = structure_from_dict(inserted)
        self._persisted[created.id] = created
        self._publish("created", created)
        return created
