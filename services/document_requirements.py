"""
Resolves the expected-document checklist for a new application.

Requirements come from the first active lender product of the requested category that
declares any, else from a default set. A bank-statement baseline is always merged in:
exactly one bank_statements entry, required, covering at least six months.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import ExpectedDocument, LenderProduct

logger = logging.getLogger(__name__)

BANK_STATEMENTS = "bank_statements"
BASELINE_BANK_STATEMENT_MONTHS = 6
_MONTHS_RE = re.compile(r"(\d+)\s*-?\s*months?\b", re.IGNORECASE)

DOCUMENT_LABELS = {
    "bank_statements": "Bank Statements",
    "financial_statements": "Financial Statements",
    "tax_returns": "Tax Returns",
    "business_license": "Business License",
    "articles_of_incorporation": "Articles of Incorporation",
    "account_prepared_financials": "Accountant Prepared Financials",
    "pnl_statement": "Profit & Loss Statement",
    "void_cheque": "Void Cheque",
    "other": "Other",
}


@dataclass
class DocumentRequirement:
    key: str
    required: bool = True
    months: Optional[int] = None
    label: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"key": self.key, "required": self.required, "label": self.label}
        if self.months is not None:
            out["months"] = self.months
        if self.meta:
            out["meta"] = dict(self.meta)
        return out


DEFAULT_REQUIREMENTS: tuple[DocumentRequirement, ...] = (
    DocumentRequirement(BANK_STATEMENTS, True, 6, DOCUMENT_LABELS[BANK_STATEMENTS]),
    DocumentRequirement("tax_returns", True, None, DOCUMENT_LABELS["tax_returns"]),
    DocumentRequirement("financial_statements", True, None, DOCUMENT_LABELS["financial_statements"]),
)


def slugify_document_type(value: str) -> str:
    """'Bank Statements' -> 'bank_statements'. Any bank statement variant maps to bank_statements."""
    slug = re.sub(r"[^a-z0-9]+", "_", str(value).strip().lower()).strip("_")
    if "bank_statement" in slug:
        return BANK_STATEMENTS
    return slug or "other"


def months_from_text(value: Any) -> Optional[int]:
    """'Bank Statements (last 3 months)' -> 3."""
    match = _MONTHS_RE.search(str(value or ""))
    return int(match.group(1)) if match else None


def _label_for(key: str) -> str:
    return DOCUMENT_LABELS.get(key) or key.replace("_", " ").title()


def _parse_months(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        months = int(value)
    except (TypeError, ValueError):
        return None
    return months if months > 0 else None


def parse_requirement(entry: Any) -> Optional[DocumentRequirement]:
    """
    Build a requirement from a product entry: a plain string or an object with key|documentType|type.
    A month count written in the text ('last 3 months') is used when no explicit months is given.
    """
    if isinstance(entry, str):
        if not entry.strip():
            return None
        key = slugify_document_type(entry)
        return DocumentRequirement(key=key, required=True, months=months_from_text(entry), label=_label_for(key))
    if not isinstance(entry, dict):
        return None
    raw_key = entry.get("key") or entry.get("documentType") or entry.get("document_type") or entry.get("type")
    if not raw_key:
        return None
    key = slugify_document_type(raw_key)
    meta = {k: v for k, v in entry.items() if k not in ("key", "documentType", "document_type", "type", "required", "months", "label")}
    months = _parse_months(entry.get("months"))
    if months is None:
        months = months_from_text(raw_key) or months_from_text(entry.get("label"))
    return DocumentRequirement(
        key=key,
        required=bool(entry.get("required", True)),
        months=months,
        label=entry.get("label") or _label_for(key),
        meta=meta,
    )


def apply_baseline(requirements: Iterable[DocumentRequirement]) -> list[DocumentRequirement]:
    """
    Collapse duplicate keys into their first occurrence (keeping the larger months),
    then make sure bank_statements exists, is required, and covers at least six months.
    Returns new objects; inputs are left untouched.
    """
    merged: dict[str, DocumentRequirement] = {}
    for req in requirements:
        key = slugify_document_type(req.key)
        existing = merged.get(key)
        if existing is None:
            merged[key] = DocumentRequirement(key, req.required, req.months, req.label, dict(req.meta))
            continue
        if req.months is not None and (existing.months is None or req.months > existing.months):
            existing.months = req.months
        existing.required = existing.required or req.required

    bank = merged.get(BANK_STATEMENTS)
    if bank is None:
        merged[BANK_STATEMENTS] = DocumentRequirement(
            BANK_STATEMENTS, True, BASELINE_BANK_STATEMENT_MONTHS, _label_for(BANK_STATEMENTS)
        )
    else:
        bank.required = True
        if bank.months is None or bank.months < BASELINE_BANK_STATEMENT_MONTHS:
            bank.months = BASELINE_BANK_STATEMENT_MONTHS
    return list(merged.values())


async def _product_requirements(session: AsyncSession, category: str) -> Optional[list[DocumentRequirement]]:
    result = await session.execute(
        select(LenderProduct)
        .where(LenderProduct.category == category, LenderProduct.is_active.is_(True))
        .order_by(LenderProduct.created_at, LenderProduct.id)
    )
    for product in result.scalars():
        if not product.doc_requirements:
            continue
        parsed = [r for r in (parse_requirement(e) for e in product.doc_requirements) if r is not None]
        if parsed:
            logger.debug("Using document requirements from product %s", product.id)
            return parsed
    return None


async def resolve_requirements(session: AsyncSession, category: Optional[str]) -> list[DocumentRequirement]:
    """Ordered requirement list for an application of the given category, baseline applied."""
    requirements = None
    if category:
        requirements = await _product_requirements(session, category)
    if requirements is None:
        requirements = list(DEFAULT_REQUIREMENTS)
    return apply_baseline(requirements)


def build_expected_documents(application_id: str, requirements: list[DocumentRequirement]) -> list[ExpectedDocument]:
    now = datetime.now(timezone.utc)
    return [
        ExpectedDocument(
            id=str(uuid.uuid4()),
            application_id=application_id,
            document_type=req.key,
            is_required=req.required,
            months=req.months,
            label=req.label,
            meta=req.meta or None,
            created_at=now,
        )
        for req in requirements
    ]
