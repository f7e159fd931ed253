"""
Table session: the operator-facing state around one structure.

The session keeps a working copy that transforms are applied to and the last
structure the store confirmed. While a save is in flight ``loading`` is set so
a front end can disable its controls. A failed save keeps the working copy,
points the render plan back at the persisted structure and records a notice.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .errors import PersistenceError
from .model import Structure
from .projection import RenderPlan, project
from .store import StructureStore

logger = logging.getLogger(__name__)

_notice_ids = itertools.count(1)


@dataclass(frozen=True)
class Notice:
    id: int
    level: str  # info/error
    message: str


class TableSession:
    def __init__(self, store: StructureStore, main_tab: str, sub_tab: str) -> None:
        self.store = store
        self.main_tab = main_tab
        self.sub_tab = sub_tab
        self.loading = False
        self.notices: list[Notice] = []
        self.persisted: Structure = store.get(main_tab, sub_tab)
        self.working: Structure = self.persisted
        self._save_failed = False

    @property
    def dirty(self) -> bool:
        return self.working != self.persisted

    def _notify(self, level: str, message: str) -> Notice:
        notice = Notice(id=next(_notice_ids), level=level, message=message)
        self.notices.append(notice)
        return notice

    def dismiss(self, notice: Notice | int) -> None:
        notice_id = notice.id if isinstance(notice, Notice) else notice
        self.notices = [n for n in self.notices if n.id != notice_id]

    def apply(self, transform: Callable[..., Structure], *args: Any, **kwargs: Any) -> bool:
        """
        Runs ``transform(working, *args, **kwargs)`` and saves the result.

        Returns True when the change was persisted (or was a no-op). On a
        ``PersistenceError`` the mutated working copy is kept and False is
        returned; other exceptions propagate and leave the session unchanged.
        """
        updated = transform(self.working, *args, **kwargs)
        if updated is self.working:
            return True
        self.working = updated
        return self.save()

    def save(self) -> bool:
        self.loading = True
        try:
            self.persisted = self.store.save(self.working)
        except PersistenceError as e:
            logger.error("Saving %s/%s failed: %s", self.main_tab, self.sub_tab, e)
            self._save_failed = True
            self._notify("error", f"Changes could not be saved: {e}")
            return False
        finally:
            self.loading = False
        self.working = self.persisted
        self._save_failed = False
        return True

    def plan(self) -> RenderPlan:
        """Render plan of the working copy, or of the persisted structure after a failed save."""
        return project(self.persisted if self._save_failed else self.working)

    def reload(self) -> Structure:
        self.persisted = self.store.get(self.main_tab, self.sub_tab)
        self.working = self.persisted
        self._save_failed = False
        return self.working
