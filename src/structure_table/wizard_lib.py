"""Prompt helpers shared by the interactive table and field pickers.

Every helper takes the input function as its first argument so callers can
pass ``input`` at the terminal and a scripted fake in tests.
"""
from __future__ import annotations

from typing import Callable, Sequence

__all__ = [
    "PromptFunc",
    "prompt_menu",
    "prompt_multi_select",
    "prompt_text",
    "prompt_bool",
]

PromptFunc = Callable[[str], str]


def _menu_text(header: str, options: Sequence[tuple[str, str]], hint: str) -> str:
    lines = [header]
    lines.extend(f"\t[{i}] {label}" for i, (_, label) in enumerate(options, start=1))
    return "\n".join(lines) + "\n" + hint


def prompt_menu(
    prompt: PromptFunc,
    header: str,
    options: Sequence[tuple[str, str]],
    *,
    default: str | None = None,
) -> str:
    """Shows a numbered menu and returns the chosen option name.

    Options are ``(name, label)`` pairs. The operator may answer with the
    number, the name or the label; empty input returns ``default`` when set.
    """
    hint = f"> (default: {default}): " if default else "> "
    menu = _menu_text(header, options, hint)

    lookup: dict[str, str] = {}
    for i, (name, label) in enumerate(options, start=1):
        lookup[str(i)] = name
        lookup.setdefault(name.lower(), name)
        lookup.setdefault(label.lower(), name)

    while True:
        answer = prompt(menu).strip().lower()
        if not answer and default:
            return default
        if answer in lookup:
            return lookup[answer]
        print(f"Invalid choice. Options: {', '.join(name for name, _ in options)}\n")


def _parse_selection(answer: str, count: int) -> list[int] | None:
    """``"1,3-4"`` -> ``[0, 2, 3]``; None when any part is out of range."""
    picked: list[int] = []
    for part in answer.replace(" ", "").split(","):
        if not part:
            continue
        start, sep, end = part.partition("-")
        try:
            lo = int(start)
            hi = int(end) if sep else lo
        except ValueError:
            return None
        if lo < 1 or hi > count or lo > hi:
            return None
        for n in range(lo, hi + 1):
            if n - 1 not in picked:
                picked.append(n - 1)
    return picked


def prompt_multi_select(
    prompt: PromptFunc,
    header: str,
    options: Sequence[tuple[str, str]],
    *,
    allow_empty: bool = False,
) -> list[str]:
    """Numbered menu accepting several picks (``1,3-5`` or ``all``).

    Returns option names in the order the operator listed them.
    """
    menu = _menu_text(header, options, "> (e.g. 1,3-5 or all): ")
    while True:
        answer = prompt(menu).strip().lower()
        if not answer:
            if allow_empty:
                return []
            print("Select at least one option.\n")
            continue
        if answer == "all":
            return [name for name, _ in options]
        picked = _parse_selection(answer, len(options))
        if picked:
            return [options[i][0] for i in picked]
        print(f"Invalid selection. Enter numbers between 1 and {len(options)}.\n")


def prompt_text(prompt: PromptFunc, text: str, *, default: str | None = None) -> str:
    """Free text; empty input returns ``default`` or asks again when there is none."""
    while True:
        value = prompt(text).strip()
        if value:
            return value
        if default is not None:
            return default
        print("A value is required.\n")


def prompt_bool(
    prompt: PromptFunc, text: str, *, default: bool | None = None
) -> bool | None:
    """Yes/no question; ``text`` should carry a hint such as ``[y/n]``."""
    while True:
        value = prompt(text).strip().lower()
        if value == "":
            return default
        if value in {"y", "yes"}:
            return True
        if value in {"n", "no"}:
            return False
        print("Invalid choice. Enter y or n.\n")
