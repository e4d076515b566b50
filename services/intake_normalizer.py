"""
Normalizes client application submissions into one internal representation.

Clients send the same four-step form in several shapes: step objects at the top
level, the same steps nested under a ``formData`` wrapper, a mix of both, or a
flat legacy body. Step objects are resolved per step from an ordered list of
sources; legacy field names inside a step are aliased onto canonical names.
Flat legacy bodies and incomplete submissions are rejected before anything is
written. Internal test submissions are short-circuited.
"""
from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

STEP_KEYS = ("step1", "step2", "step3", "step4")
REQUIRED_STEPS = ("step1", "step3", "step4")

# Where a step object may live, in priority order
STEP_SOURCES: tuple[tuple[str, Callable[[dict[str, Any]], Any]], ...] = (
    ("top-level", lambda payload: payload),
    ("formData", lambda payload: payload.get("formData")),
)

SHAPE_STEP_KEYED = "step-keyed"
SHAPE_WRAPPED = "form-data-wrapped"
SHAPE_MIXED = "mixed"
SHAPE_NONE = "none"

# Top-level keys that only the retired flat client sends
LEGACY_ONLY_FIELDS = (
    "legalName",
    "applicantFirstName",
    "applicantLastName",
    "businessName",
    "applicantSSN",
    "operatingName",
)

# (legacy, canonical) per step; the legacy value is used only when canonical is empty
FIELD_ALIASES: dict[str, tuple[tuple[str, str], ...]] = {
    "step1": (
        ("fundingAmount", "requestedAmount"),
        ("loanAmount", "requestedAmount"),
        ("loanPurpose", "useOfFunds"),
        ("fundsPurpose", "useOfFunds"),
        ("selectedCategory", "productCategory"),
    ),
    "step2": (("selectedCategory", "productCategory"),),
    "step3": (
        ("operatingName", "businessName"),
        ("legalName", "legalBusinessName"),
        ("numEmployees", "numberOfEmployees"),
        ("businessEntity", "businessType"),
    ),
    "step4": (
        ("applicantFirstName", "firstName"),
        ("applicantLastName", "lastName"),
        ("applicantEmail", "email"),
        ("applicantPhone", "phone"),
        ("phoneNumber", "phone"),
    ),
}

TEST_BUSINESS_MARKERS = (
    "Test Corp",
    "Test LLC",
    "Test Company",
    "Test Inc",
    "Webhook Test",
    "Format Test",
    "Debug Test",
    "E2E Test",
    "Final Test",
    "Lender Match Test",
)
TEST_EMAIL_MARKERS = (
    "+test@boreal.financial",
    "test@",
    "@test.com",
    "debug@",
    "webhook@",
)

MIN_BUSINESS_NAME_LENGTH = 2

_AMOUNT_STRIP = re.compile(r"[\s,$]")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class IntakeError(Exception):
    """Submission stopped before persistence; carries the HTTP status and body to return."""

    def __init__(self, status_code: int, body: dict[str, Any]):
        super().__init__(body.get("error") or body.get("reason") or "intake rejected")
        self.status_code = status_code
        self.body = body


@dataclass
class NormalizedSubmission:
    steps: dict[str, dict[str, Any]]
    shape: str
    raw: dict[str, Any]
    client_application_id: Optional[str] = None
    source: str = "client-v2-step-based"
    step_sources: dict[str, str] = field(default_factory=dict)

    def step(self, key: str) -> dict[str, Any]:
        return self.steps.get(key) or {}

    @property
    def business_name(self) -> str:
        return _clean_str(self.step("step3").get("businessName")) or ""

    @property
    def email(self) -> str:
        return _clean_str(self.step("step4").get("email")) or ""

    @property
    def requested_amount(self) -> Optional[float]:
        return parse_amount(self.step("step1").get("requestedAmount"))

    def canonical_fields(self) -> dict[str, Any]:
        return canonical_fields(self.steps)

    def form_data(self) -> dict[str, Any]:
        """Audit record for the application row: resolved steps plus the verbatim submission."""
        out: dict[str, Any] = {key: copy.deepcopy(self.step(key)) for key in STEP_KEYS}
        out["applicationSource"] = self.source
        out["detectedFormat"] = self.shape
        out["submitted"] = copy.deepcopy(self.raw)
        return out


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _pick(*values: Any) -> Any:
    """First value that is neither None nor an empty string."""
    for v in values:
        if not _is_empty(v):
            return v
    return None


def parse_amount(value: Any) -> Optional[float]:
    """Parse a money amount such as 50000, "50,000" or "$50,000.00". Returns None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _AMOUNT_STRIP.sub("", str(value))
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_int(value: Any) -> Optional[int]:
    amount = parse_amount(value)
    return int(amount) if amount is not None else None


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def resolve_steps(payload: dict[str, Any]) -> tuple[dict[str, dict[str, Any]], dict[str, str]]:
    """Find each step object by trying STEP_SOURCES in order. Returns (steps, source per step)."""
    steps: dict[str, dict[str, Any]] = {}
    sources: dict[str, str] = {}
    for key in STEP_KEYS:
        for source_name, locate in STEP_SOURCES:
            container = locate(payload)
            if not isinstance(container, dict):
                continue
            candidate = container.get(key)
            if isinstance(candidate, dict):
                steps[key] = candidate
                sources[key] = source_name
                break
    return steps, sources


def detect_shape(sources: dict[str, str]) -> str:
    if not sources:
        return SHAPE_NONE
    used = set(sources.values())
    if used == {"top-level"}:
        return SHAPE_STEP_KEYED
    if used == {"formData"}:
        return SHAPE_WRAPPED
    return SHAPE_MIXED


def apply_aliases(steps: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Return copies of the steps with legacy names copied onto empty canonical names."""
    out: dict[str, dict[str, Any]] = {}
    for key, step in steps.items():
        mapped = dict(step)
        for legacy, canonical in FIELD_ALIASES.get(key, ()):
            if _is_empty(mapped.get(canonical)) and not _is_empty(mapped.get(legacy)):
                mapped[canonical] = mapped[legacy]
                logger.debug("Applied mapping %s.%s -> %s", key, legacy, canonical)
        out[key] = mapped
    return out


def detect_test_submission(steps: dict[str, dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Return the 202 body when the submission comes from internal testing, else None."""
    business_name = str((steps.get("step3") or {}).get("businessName") or "")
    email = str((steps.get("step4") or {}).get("email") or "")
    is_test = any(m in business_name for m in TEST_BUSINESS_MARKERS) or any(
        m in email for m in TEST_EMAIL_MARKERS
    )
    if not is_test:
        return None
    return {
        "ignored": True,
        "reason": "Internal test submission blocked from sales pipeline",
        "businessName": business_name,
        "applicantEmail": email,
        "message": "Test applications are not added to production sales pipeline",
    }


def legacy_fields_present(payload: dict[str, Any]) -> list[str]:
    return [key for key in payload if key in LEGACY_ONLY_FIELDS]


def _check_required_fields(steps: dict[str, dict[str, Any]]) -> None:
    step1, step3, step4 = steps["step1"], steps["step3"], steps["step4"]

    if _is_empty(step1.get("requestedAmount")):
        raise IntakeError(400, {"error": "step1 missing required field: requestedAmount", "field": "requestedAmount"})
    amount = parse_amount(step1.get("requestedAmount"))
    if amount is None or amount <= 0:
        raise IntakeError(
            400,
            {"error": "step1 requestedAmount must be a positive number", "field": "requestedAmount"},
        )

    name = _clean_str(step3.get("businessName"))
    if name is None:
        raise IntakeError(400, {"error": "step3 missing required field: businessName", "field": "businessName"})
    if len(name) < MIN_BUSINESS_NAME_LENGTH:
        raise IntakeError(
            400,
            {
                "error": f"step3 businessName must be at least {MIN_BUSINESS_NAME_LENGTH} characters",
                "field": "businessName",
            },
        )

    if _is_empty(step4.get("email")):
        raise IntakeError(400, {"error": "step4 missing required field: email", "field": "email"})


def normalize_submission(payload: dict[str, Any], client_version: Optional[str] = None) -> NormalizedSubmission:
    """
    Run the intake gates in order and return the normalized submission.

    Raises IntakeError(202) for internal test submissions, IntakeError(400) for a flat
    legacy body, missing steps, or a missing/invalid required field.
    """
    raw_steps, sources = resolve_steps(payload)
    steps = apply_aliases(raw_steps)

    ignored = detect_test_submission(steps)
    if ignored is not None:
        logger.info(
            "Blocking internal test application business=%r email=%r",
            ignored["businessName"],
            ignored["applicantEmail"],
        )
        raise IntakeError(202, ignored)

    legacy = legacy_fields_present(payload)
    if legacy and not sources:
        logger.warning("Legacy field format rejected: %s", legacy)
        raise IntakeError(
            400,
            {
                "error": "Legacy field format detected. Application must use step1/step3/step4 structure.",
                "rejectedFields": legacy,
            },
        )

    missing = [key for key in REQUIRED_STEPS if key not in steps]
    if missing:
        logger.warning("Application rejected, missing steps %s; keys=%s", missing, list(payload))
        raise IntakeError(
            400,
            {
                "error": "Invalid application structure. Missing step1, step3, or step4",
                "required": list(REQUIRED_STEPS),
                "received": {key: key in steps for key in REQUIRED_STEPS},
            },
        )

    _check_required_fields(steps)

    client_id = payload.get("applicationId")
    source = _clean_str(payload.get("source")) or _clean_str(client_version) or "client-v2-step-based"
    return NormalizedSubmission(
        steps=steps,
        shape=detect_shape(sources),
        raw=copy.deepcopy(payload),
        client_application_id=client_id if isinstance(client_id, str) else None,
        source=source,
        step_sources=sources,
    )


def canonical_fields(steps: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten step objects into the snake_case view used for persistence and matching.
    Accepts either resolved steps or a stored form_data blob (which holds the same step keys).
    """
    s1 = steps.get("step1") or {}
    s2 = steps.get("step2") or {}
    s3 = steps.get("step3") or {}
    s4 = steps.get("step4") or {}

    country = _clean_str(_pick(s1.get("country"), s1.get("businessLocation"), s3.get("country")))
    return {
        "requested_amount": parse_amount(_pick(s1.get("requestedAmount"), s1.get("fundingAmount"), s1.get("loanAmount"))),
        "use_of_funds": _clean_str(_pick(s1.get("useOfFunds"), s1.get("use_of_funds"), s1.get("loanPurpose"))),
        "category": _clean_str(_pick(s2.get("productCategory"), s2.get("selectedCategory"), s1.get("productCategory"))),
        "country": normalize_country(country),
        "province": _clean_str(_pick(s3.get("businessState"), s3.get("province"), s3.get("headquartersState"))),
        "industry": _clean_str(_pick(s3.get("industry"), s1.get("industry"))),
        "annual_revenue": parse_amount(
            _pick(
                s3.get("annualRevenue"),
                s1.get("annualRevenue"),
                s3.get("estimatedYearlyRevenue"),
                s1.get("estimatedYearlyRevenue"),
                s3.get("revenueLastYear"),
                s1.get("revenueLastYear"),
            )
        ),
        "credit_score": _parse_int(_pick(s4.get("creditScore"), s1.get("creditScore"))),
        "business_name": _clean_str(_pick(s3.get("businessName"), s3.get("operatingName"), s4.get("businessName"))),
        "legal_business_name": _clean_str(_pick(s3.get("legalBusinessName"), s3.get("legalName"))),
        "business_type": _clean_str(_pick(s3.get("businessType"), s3.get("businessEntity"))),
        "year_established": _clean_str(s3.get("yearEstablished")),
        "ein": _clean_str(s3.get("ein")),
        "address": s3.get("businessAddress") if isinstance(s3.get("businessAddress"), dict) else None,
        "business_phone": _clean_str(_pick(s3.get("businessPhone"), s4.get("phoneNumber"), s4.get("phone"))),
        "website": _clean_str(s3.get("website")),
        "description": _clean_str(s3.get("description")),
        "number_of_employees": _parse_int(_pick(s3.get("numberOfEmployees"), s3.get("numEmployees"))),
        "first_name": _clean_str(_pick(s4.get("firstName"), s4.get("applicantFirstName"))),
        "last_name": _clean_str(_pick(s4.get("lastName"), s4.get("applicantLastName"))),
        "email": _clean_str(_pick(s4.get("email"), s4.get("applicantEmail"))),
        "phone": _clean_str(_pick(s4.get("phone"), s4.get("applicantPhone"), s4.get("phoneNumber"))),
        "partner_first_name": _clean_str(s4.get("partnerFirstName")),
        "partner_last_name": _clean_str(s4.get("partnerLastName")),
        "partner_email": _clean_str(s4.get("partnerEmail")),
        "partner_phone": _clean_str(s4.get("partnerPhone")),
    }


_COUNTRY_NAMES = {
    "canada": "CA",
    "ca": "CA",
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
    "us": "US",
}


def normalize_country(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _COUNTRY_NAMES.get(value.strip().lower(), value.strip().upper())
