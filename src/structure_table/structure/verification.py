from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from ..model import FieldKey, Structure, Verification
from .levels import as_field_key, not_found


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def set_verification(
    structure: Structure,
    key: FieldKey | str,
    verified: bool,
    *,
    verified_by: str,
    now: str | None = None,
    strict: bool = False,
) -> Structure:
    """
    Stamps (or clears) the verification block of every field matching ``key``.

    A verified field records who verified it and when; un-verifying resets both
    to None. The document-level ``verification`` summary is refreshed so it
    reports whether every field is verified.
    """
    key = as_field_key(key)
    doc = structure.document
    if doc.find_field(key) is None:
        return not_found(structure, strict, f"Field {key} not found")

    stamp = Verification(
        is_verified=verified,
        verified_at=(now or _now_iso()) if verified else None,
        verified_by=verified_by if verified else None,
    )
    sections = tuple(
        replace(
            section,
            subsections=tuple(
                replace(
                    sub,
                    fields=tuple(
                        replace(f, verification=stamp) if f.key == key else f
                        for f in sub.fields
                    ),
                )
                for sub in section.subsections
            ),
        )
        for section in doc.sections
    )
    doc = replace(doc, sections=sections)
    summary = {
        **doc.extra.get("verification", {}),
        "field_verified": all(f.verification.is_verified for _, _, f in doc.iter_fields()),
        "verified_at": stamp.verified_at or now or _now_iso(),
        "verified_by": verified_by,
    }
    return replace(structure, document=replace(doc, extra={**doc.extra, "verification": summary}))


def toggle_verification(
    structure: Structure,
    key: FieldKey | str,
    *,
    verified_by: str,
    now: str | None = None,
    strict: bool = False,
) -> Structure:
    key = as_field_key(key)
    current = structure.document.find_field(key)
    if current is None:
        return not_found(structure, strict, f"Field {key} not found")
    return set_verification(
        structure,
        key,
        not current.verification.is_verified,
        verified_by=verified_by,
        now=now,
        strict=strict,
    )


def all_fields_verified(structure: Structure) -> bool:
    return all(f.verification.is_verified for _, _, f in structure.document.iter_fields())
