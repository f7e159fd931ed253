from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from . import __version__
from .api import add_fields, open_backend, open_store, render_table
from .config import EngineSettings, load_settings
from .errors import StructureConfigError, StructureTableError
from .export import rows_to_frame, write_export
from .model import FieldKey, Structure, structure_to_dict
from .projection import project
from .selection import run_selection
from .store import StructureStore, filter_by_active_tab
from .structure import editing, ordering, verification, visibility
from .structure.config import load_structure_file
from .structure.fragments import fragment_from_dict
from .structure.levels import Level
from .validate import validate_structures, write_validation_report

logger = logging.getLogger("structure_table")


def _path(p: str) -> Path:
    return Path(p).expanduser()


def _prompt(text: str) -> str:
    return input(text)


def _setup_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _add_tab_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("main_tab", help="Main tab, e.g. 'company'")
    p.add_argument("sub_tab", help="Sub-tab (the 'Tabs' column), e.g. 'Profile'")


def _add_item_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--level", required=True, choices=[lv.value for lv in Level])
    p.add_argument(
        "--item",
        required=True,
        help="Section or subsection name, or 'table.column' for a field",
    )
    p.add_argument(
        "--parent",
        help="Section name for a subsection; subsection name (or 'Section/Subsection') for a field",
    )
    p.add_argument(
        "--strict", action="store_true", help="Fail instead of ignoring an unknown item"
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="structure-table")
    p.add_argument("--version", action="version", version=f"structure-table {__version__}")
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)",
    )
    p.add_argument(
        "--config",
        type=_path,
        help="Settings YAML (also read from STRUCTURE_TABLE_CONFIG env var if not set)",
    )
    p.add_argument(
        "--data-dir",
        type=_path,
        help="Directory holding one file per table (overrides STRUCTURE_TABLE_DATA_DIR)",
    )

    sub = p.add_subparsers(dest="cmd")

    show = sub.add_parser("show", help="Print a structure's sections, subsections and fields")
    _add_tab_args(show)
    show.add_argument("--active-tab", help="Only sections tagged for this main tab")
    show.add_argument("--format", default="text", choices=["text", "json", "plan"])

    tog = sub.add_parser("toggle", help="Toggle visibility of a section, subsection or field")
    _add_tab_args(tog)
    _add_item_args(tog)

    for name, text in (("show-all", "Make everything visible"), ("hide-all", "Hide everything")):
        bulk = sub.add_parser(name, help=text)
        _add_tab_args(bulk)

    mv = sub.add_parser("move", help="Move a section, subsection or field up, down or to a position")
    _add_tab_args(mv)
    _add_item_args(mv)
    where = mv.add_mutually_exclusive_group(required=True)
    where.add_argument("--direction", choices=["up", "down"])
    where.add_argument("--position", type=int, help="1-based target position among siblings")

    ren = sub.add_parser("rename", help="Rename the sub-tab, a section or a subsection")
    _add_tab_args(ren)
    ren.add_argument("--level", required=True, choices=["tab", "section", "subsection"])
    ren.add_argument("--item", help="Section or subsection name (not used for --level tab)")
    ren.add_argument("--parent", help="Section name for a subsection")
    ren.add_argument("--to", required=True, help="New name")
    ren.add_argument("--strict", action="store_true", help="Fail instead of ignoring an unknown item")

    rm = sub.add_parser("remove-field", help="Remove a field from its subsection")
    _add_tab_args(rm)
    rm.add_argument("field", help="Field as 'table.column'")
    rm.add_argument("--parent", required=True, help="Subsection name or 'Section/Subsection'")

    ed = sub.add_parser("edit-field", help="Change a field's display label or dropdown options")
    _add_tab_args(ed)
    ed.add_argument("field", help="Field as 'table.column'")
    ed.add_argument("--parent", required=True, help="Subsection name or 'Section/Subsection'")
    ed.add_argument("--label", help="New display label")
    ed.add_argument("--options", help="Comma-separated dropdown options ('' clears them)")

    rows = sub.add_parser("rows", help="Assemble and print the table rows")
    _add_tab_args(rows)
    rows.add_argument("--active-tab", help="Only sections tagged for this main tab")
    rows.add_argument("--entity-table", help="Table whose records are the entities")
    rows.add_argument("--output", type=_path, help="Export to CSV, JSON or Parquet instead of printing")
    rows.add_argument("--raw", action="store_true", help="Do not apply field formatting")

    add = sub.add_parser("add-fields", help="Add table columns as fields (interactive without --fragment)")
    _add_tab_args(add)
    add.add_argument("--fragment", type=_path, help="Fragment JSON/YAML {table_names, column_mappings}")
    add.add_argument("--section", help="Target section (created if missing)")
    add.add_argument("--subsection", help="Target subsection (created if missing)")

    ver = sub.add_parser("verify", help="Mark a field verified (or not)")
    _add_tab_args(ver)
    ver.add_argument("field", help="Field as 'table.column'")
    ver.add_argument("--unverify", action="store_true", help="Clear the verification instead")
    ver.add_argument("--by", help="Verifier name (overrides STRUCTURE_TABLE_VERIFIED_BY)")

    val = sub.add_parser("validate", help="Validate the structures of a main tab")
    val.add_argument("main_tab", nargs="?", help="Main tab to validate from the data directory")
    val.add_argument("--file", type=_path, help="Validate structures from a JSON/YAML file instead")
    val.add_argument("--out", type=_path, help="Validation report JSON output path")

    return p


def _settings(args: argparse.Namespace) -> EngineSettings:
    settings = load_settings(args.config)
    if args.data_dir is not None:
        settings = replace(settings, data_dir=args.data_dir)
    return settings


def _store(settings: EngineSettings) -> StructureStore:
    return open_store(open_backend(settings), settings)


def _parent(level: Level, raw: str | None):
    if raw is None or level is not Level.FIELD:
        return raw
    section, sep, subsection = raw.partition("/")
    return (section, subsection) if sep else raw


def _item(level: Level, raw: str):
    return FieldKey.parse(raw) if level is Level.FIELD else raw


def _save_if_changed(store: StructureStore, before: Structure, after: Structure) -> int:
    if after is before or after == before:
        logger.info("Nothing changed for %s/%s", before.main_tab, before.sub_tab)
        return 0
    store.save(after)
    return 0


def _format_structure(structure: Structure) -> str:
    def mark(visible: bool) -> str:
        return "[x]" if visible else "[ ]"

    doc = structure.document
    lines = [f"{structure.main_tab} / {structure.sub_tab} (tab order {doc.order.tab})"]
    for section in sorted(doc.sections, key=lambda s: s.order):
        tag = f" tab={section.tab}" if section.tab else ""
        lines.append(f"  {mark(section.visible)} {section.order}. {section.name}{tag}")
        for sub in sorted(section.subsections, key=lambda s: s.order):
            lines.append(
                f"      {mark(sub.visible)} {sub.order}. {sub.name}  tables: {', '.join(sub.tables)}"
            )
            for f in sorted(sub.fields, key=lambda f: f.order):
                flag = "  verified" if f.verification.is_verified else ""
                lines.append(f"          {mark(f.visible)} {f.order}. {f.key}  {f.display!r}{flag}")
    return "\n".join(lines)


def _cmd_show(args: argparse.Namespace) -> int:
    structure = _store(_settings(args)).get(args.main_tab, args.sub_tab)
    if args.active_tab:
        structure = filter_by_active_tab(structure, args.active_tab)
    if args.format == "json":
        json.dump(structure_to_dict(structure), fp=sys.stdout, indent=2, ensure_ascii=False)
        print()
    elif args.format == "plan":
        json.dump(project(structure).to_dict(), fp=sys.stdout, indent=2, ensure_ascii=False)
        print()
    else:
        print(_format_structure(structure))
    return 0


def _cmd_toggle(args: argparse.Namespace) -> int:
    store = _store(_settings(args))
    structure = store.get(args.main_tab, args.sub_tab)
    level = Level(args.level)
    updated = visibility.toggle(
        structure, level, _parent(level, args.parent), _item(level, args.item), strict=args.strict
    )
    return _save_if_changed(store, structure, updated)


def _cmd_set_all(args: argparse.Namespace, visible: bool) -> int:
    store = _store(_settings(args))
    structure = store.get(args.main_tab, args.sub_tab)
    return _save_if_changed(store, structure, visibility.set_all(structure, visible))


def _cmd_move(args: argparse.Namespace) -> int:
    store = _store(_settings(args))
    structure = store.get(args.main_tab, args.sub_tab)
    level = Level(args.level)
    parent, item = _parent(level, args.parent), _item(level, args.item)
    if args.position is not None:
        updated = ordering.move_to(
            structure, level, parent, item, args.position, strict=args.strict
        )
    else:
        updated = ordering.move(structure, level, parent, item, args.direction, strict=args.strict)
    return _save_if_changed(store, structure, updated)


def _cmd_rename(args: argparse.Namespace) -> int:
    store = _store(_settings(args))
    if args.level == "tab":
        store.rename_tab(args.main_tab, args.sub_tab, args.to)
        return 0
    if not args.item:
        logger.error("--item is required to rename a %s", args.level)
        return 1
    structure = store.get(args.main_tab, args.sub_tab)
    updated = editing.rename(
        structure, args.level, args.parent, args.item, args.to, strict=args.strict
    )
    return _save_if_changed(store, structure, updated)


def _cmd_remove_field(args: argparse.Namespace) -> int:
    store = _store(_settings(args))
    structure = store.get(args.main_tab, args.sub_tab)
    updated = editing.remove_field(
        structure, _parent(Level.FIELD, args.parent), FieldKey.parse(args.field), strict=True
    )
    return _save_if_changed(store, structure, updated)


def _cmd_edit_field(args: argparse.Namespace) -> int:
    if args.label is None and args.options is None:
        logger.error("Give --label and/or --options")
        return 1
    options = None
    if args.options is not None:
        options = [o.strip() for o in args.options.split(",") if o.strip()]
    store = _store(_settings(args))
    structure = store.get(args.main_tab, args.sub_tab)
    updated = editing.edit_field(
        structure,
        _parent(Level.FIELD, args.parent),
        FieldKey.parse(args.field),
        display=args.label,
        dropdown_options=options,
        strict=True,
    )
    return _save_if_changed(store, structure, updated)


def _cmd_rows(args: argparse.Namespace) -> int:
    settings = _settings(args)
    if args.entity_table:
        settings = replace(settings, entity_table=args.entity_table)
    result = render_table(
        open_backend(settings),
        args.main_tab,
        args.sub_tab,
        settings=settings,
        active_main_tab=args.active_tab,
    )
    failed = sum(1 for r in result.rows if r.failed)
    if failed:
        logger.warning("%d row(s) could not be assembled", failed)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        write_export(result.plan, result.rows, args.output, formatted=not args.raw, completion=True)
        return 0
    df = rows_to_frame(result.plan, result.rows, formatted=not args.raw, completion=True)
    print(df.to_string())
    return 0


def _read_fragment(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise StructureConfigError(f"Failed to read fragment file: {path}") from e


def _cmd_add_fields(args: argparse.Namespace) -> int:
    settings = _settings(args)
    backend = open_backend(settings)
    store = open_store(backend, settings)

    if args.fragment:
        raw = _read_fragment(args.fragment)
        fragment = fragment_from_dict(raw)
        section = args.section or raw.get("section")
        subsection = args.subsection or raw.get("subsection")
        if not section or not subsection:
            logger.error("--section and --subsection are required with --fragment")
            return 1
    else:
        current = store.get(args.main_tab, args.sub_tab)
        bound = {f.key for _, _, f in current.document.iter_fields()}
        existing = {
            s.name: [sub.name for sub in s.subsections] for s in current.document.sections
        }
        selection = run_selection(
            backend,
            prompt=_prompt,
            exclude=bound,
            section=args.section,
            subsection=args.subsection,
            existing=existing,
        )
        fragment, section, subsection = selection.fragment, selection.section, selection.subsection

    saved = add_fields(
        store, args.main_tab, args.sub_tab, fragment, section=section, subsection=subsection
    )
    logger.info(
        "Added %d field(s) to %s > %s in %s/%s",
        len(fragment.column_mappings),
        section,
        subsection,
        saved.main_tab,
        saved.sub_tab,
    )
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    settings = _settings(args)
    verified_by = args.by or settings.verified_by
    if not args.unverify and not verified_by:
        logger.error("A verifier name is required (use --by or STRUCTURE_TABLE_VERIFIED_BY)")
        return 1
    store = _store(settings)
    structure = store.get(args.main_tab, args.sub_tab)
    updated = verification.set_verification(
        structure,
        FieldKey.parse(args.field),
        not args.unverify,
        verified_by=verified_by or "",
        strict=True,
    )
    store.save(updated)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    if args.file:
        structures = load_structure_file(args.file)
    elif args.main_tab:
        structures = _store(_settings(args)).load(args.main_tab)
    else:
        logger.error("Give a main tab or --file")
        return 1

    report = validate_structures(structures)
    if args.out:
        write_validation_report(report, args.out)
        logger.info("Validation report written to %s", args.out)
    else:
        json.dump(report.to_dict(), fp=sys.stdout, indent=2, sort_keys=True)
        print()

    if report.summary.errors:
        logger.error("Validation failed: %d error(s)", report.summary.errors)
        return 2
    logger.info("Validation successful: %d structure(s) checked", len(structures))
    return 0


_COMMANDS = {
    "show": _cmd_show,
    "toggle": _cmd_toggle,
    "show-all": lambda args: _cmd_set_all(args, True),
    "hide-all": lambda args: _cmd_set_all(args, False),
    "move": _cmd_move,
    "rename": _cmd_rename,
    "remove-field": _cmd_remove_field,
    "edit-field": _cmd_edit_field,
    "rows": _cmd_rows,
    "add-fields": _cmd_add_fields,
    "verify": _cmd_verify,
    "validate": _cmd_validate,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.log_level)

    if args.cmd is None:
        parser.print_help()
        return 0

    try:
        return _COMMANDS[args.cmd](args)
    except StructureTableError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Unexpected error occurred")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
