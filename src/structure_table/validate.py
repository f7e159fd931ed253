from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .errors import ValidationError
from .model import Structure


@dataclass(frozen=True)
class ValidationSummary:
    errors: int
    warnings: int


@dataclass(frozen=True)
class ValidationFinding:
    check_id: str
    severity: str  # INFO/WARN/ERROR
    message: str
    path: str | None = None  # "main/sub > section > subsection > table.field"

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_id": self.check_id,
            "severity": self.severity,
            "message": self.message,
            "path": self.path,
        }


@dataclass(frozen=True)
class ValidationReport:
    summary: ValidationSummary
    findings: list[ValidationFinding]
    structures: list[str]

    @property
    def ok(self) -> bool:
        return self.summary.errors == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "structures": self.structures,
            "summary": {
                "errors": self.summary.errors,
                "warnings": self.summary.warnings,
            },
            "findings": [f.to_dict() for f in self.findings],
        }


def _report(findings: list[ValidationFinding], structures: list[Structure]) -> ValidationReport:
    errors = sum(1 for f in findings if f.severity == "ERROR")
    warnings = sum(1 for f in findings if f.severity == "WARN")
    return ValidationReport(
        summary=ValidationSummary(errors=errors, warnings=warnings),
        findings=findings,
        structures=[f"{s.main_tab}/{s.sub_tab}" for s in structures],
    )


def _duplicates(names: Iterable[Any]) -> list[Any]:
    return [name for name, n in Counter(names).items() if n > 1]


def _check_order(orders: list[int], where: str) -> ValidationFinding | None:
    if sorted(orders) == list(range(1, len(orders) + 1)):
        return None
    return ValidationFinding(
        check_id="structure.order_sequence",
        severity="WARN",
        message=f"Order values {sorted(orders)} are not a contiguous 1..{len(orders)} sequence",
        path=where,
    )


def _structure_findings(structure: Structure) -> list[ValidationFinding]:
    findings: list[ValidationFinding] = []
    root = f"{structure.main_tab}/{structure.sub_tab}"
    doc = structure.document

    if doc.order.tab < 1:
        findings.append(
            ValidationFinding(
                check_id="structure.tab_order",
                severity="ERROR",
                message=f"Tab order must be a positive integer, got {doc.order.tab}",
                path=root,
            )
        )

    for name in _duplicates(s.name for s in doc.sections):
        findings.append(
            ValidationFinding(
                check_id="structure.duplicate_section",
                severity="ERROR",
                message=f"Section {name!r} appears more than once",
                path=root,
            )
        )
    finding = _check_order([s.order for s in doc.sections], root)
    if finding:
        findings.append(finding)

    for section in doc.sections:
        section_path = f"{root} > {section.name}"
        for name in _duplicates(s.name for s in section.subsections):
            findings.append(
                ValidationFinding(
                    check_id="structure.duplicate_subsection",
                    severity="ERROR",
                    message=f"Subsection {name!r} appears more than once",
                    path=section_path,
                )
            )
        finding = _check_order([s.order for s in section.subsections], section_path)
        if finding:
            findings.append(finding)

        for sub in section.subsections:
            sub_path = f"{section_path} > {sub.name}"
            for key in _duplicates(f.key for f in sub.fields):
                findings.append(
                    ValidationFinding(
                        check_id="structure.duplicate_field",
                        severity="ERROR",
                        message=f"Field {key} appears more than once",
                        path=sub_path,
                    )
                )
            finding = _check_order([f.order for f in sub.fields], sub_path)
            if finding:
                findings.append(finding)

            for f in sub.fields:
                field_path = f"{sub_path} > {f.key}"
                if f.table not in sub.tables:
                    findings.append(
                        ValidationFinding(
                            check_id="structure.field_table",
                            severity="ERROR",
                            message=f"Table {f.table!r} is not listed in the subsection's tables",
                            path=field_path,
                        )
                    )
                if f.visible and not (section.visible and sub.visible):
                    findings.append(
                        ValidationFinding(
                            check_id="structure.hidden_ancestor",
                            severity="INFO",
                            message="Field is visible but an ancestor is hidden; it will not render",
                            path=field_path,
                        )
                    )
    return findings


def validate_structure(structure: Structure) -> ValidationReport:
    """
    Checks one structure document.

    Checks performed:
    1. Tab order is a positive integer (ERROR).
    2. Section, subsection and field identities are unique among siblings (ERROR).
    3. Every field's table is listed in its subsection's ``tables`` (ERROR).
    4. Sibling order values form a contiguous 1..N sequence (WARN).
    5. Visible fields under a hidden section or subsection (INFO).
    """
    return _report(_structure_findings(structure), [structure])


def validate_structures(structures: list[Structure]) -> ValidationReport:
    """Validates each structure and checks tab order uniqueness within a main tab."""
    findings: list[ValidationFinding] = []
    for s in structures:
        findings.extend(_structure_findings(s))

    by_main: dict[str, list[Structure]] = {}
    for s in structures:
        by_main.setdefault(s.main_tab, []).append(s)
    for main_tab, group in by_main.items():
        for tab in _duplicates(s.document.order.tab for s in group):
            subs = sorted(s.sub_tab for s in group if s.document.order.tab == tab)
            findings.append(
                ValidationFinding(
                    check_id="structure.duplicate_tab_order",
                    severity="ERROR",
                    message=f"Tab order {tab} is shared by sub-tabs: {', '.join(subs)}",
                    path=main_tab,
                )
            )
    return _report(findings, structures)


def ensure_valid(structure: Structure) -> None:
    """Raises ValidationError listing every ERROR finding."""
    report = validate_structure(structure)
    errors = [f for f in report.findings if f.severity == "ERROR"]
    if errors:
        detail = "; ".join(f"{f.path}: {f.message}" for f in errors)
        raise ValidationError(f"Structure {structure.main_tab}/{structure.sub_tab} is invalid: {detail}")


def write_validation_report(report: ValidationReport, path: Path) -> None:
    """Writes the validation result to a JSON file."""
    path.write_text(
        json.dumps(report.to_dict(), indent=2, sort_keys=True), encoding="utf-8"
    )
