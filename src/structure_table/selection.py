from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from .backend import Backend
from .errors import ValidationError
from .model import FieldKey
from .structure.fragments import StructureFragment, build_fragment, default_label
from .wizard_lib import PromptFunc, prompt_bool, prompt_menu, prompt_multi_select, prompt_text


@dataclass(frozen=True)
class SelectionResult:
    fragment: StructureFragment
    section: str
    subsection: str


def pick_tables(backend: Backend, *, prompt: PromptFunc) -> list[str]:
    tables = backend.list_tables()
    if not tables:
        raise ValidationError("The backend has no tables to pick from")
    return prompt_multi_select(
        prompt, "Choose source tables:", [(t, t) for t in tables]
    )


def pick_fields(
    backend: Backend,
    table: str,
    *,
    prompt: PromptFunc,
    exclude: set[FieldKey] | None = None,
) -> list[FieldKey]:
    """Columns of ``table`` the operator wants as fields. Already-bound ones are hidden."""
    exclude = exclude or set()
    columns = [c for c in backend.list_columns(table) if FieldKey(table, c) not in exclude]
    if not columns:
        print(f"No unbound columns left in {table}.\n")
        return []
    names = prompt_multi_select(
        prompt, f"Choose fields from {table}:", [(c, c) for c in columns], allow_empty=True
    )
    return [FieldKey(table, name) for name in names]


def pick_columns(
    backend: Backend,
    *,
    prompt: PromptFunc,
    exclude: set[FieldKey] | None = None,
    ask_labels: bool = True,
) -> StructureFragment:
    """
    Walks the operator through tables, then fields, then display labels.

    Raises:
        ValidationError: nothing was selected.
    """
    pairs: list[FieldKey] = []
    for table in pick_tables(backend, prompt=prompt):
        pairs.extend(pick_fields(backend, table, prompt=prompt, exclude=exclude))
    if not pairs:
        raise ValidationError("No fields selected")

    labels: dict[FieldKey, str] = {}
    if ask_labels and prompt_bool(prompt, "Customize display labels? [y/N]: ", default=False):
        for key in pairs:
            fallback = default_label(key.name)
            labels[key] = prompt_text(prompt, f"Label for {key} (default: {fallback}): ", default=fallback)
    return build_fragment(pairs, labels=labels)


_NEW = "+"


def _choose_name(prompt: PromptFunc, kind: str, existing: Sequence[str]) -> str:
    """Picks one of ``existing`` or asks for a new name."""
    if existing:
        options = [(name, name) for name in existing] + [(_NEW, f"New {kind}")]
        choice = prompt_menu(prompt, f"Choose the target {kind}:", options)
        if choice != _NEW:
            return choice
    return prompt_text(prompt, f"{kind.capitalize()} name: ")


def run_selection(
    backend: Backend,
    *,
    prompt: PromptFunc,
    exclude: set[FieldKey] | None = None,
    section: str | None = None,
    subsection: str | None = None,
    existing: Mapping[str, Sequence[str]] | None = None,
) -> SelectionResult:
    """
    Full add-fields dialog: pick columns and name the target section/subsection.

    ``existing`` maps section names to their subsection names; when given the
    operator chooses from them before typing a new name.
    """
    existing = existing or {}
    fragment = pick_columns(backend, prompt=prompt, exclude=exclude)
    section = section or _choose_name(prompt, "section", list(existing))
    subsection = subsection or _choose_name(prompt, "subsection", list(existing.get(section, ())))
    return SelectionResult(fragment=fragment, section=section, subsection=subsection)
