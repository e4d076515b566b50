"""
Scores lender products against a persisted application.
Hard rules (country, category, amount) decide eligibility; soft rules (industry, revenue,
credit, purpose) produce a weighted score in [0, 1]. Every rule yields an annotation.
All inputs are normalized to snake_case at entry; internal logic uses snake_case only.
"""
from __future__ import annotations

from typing import Any, Optional

from schemas.lender import ProductMatchSchema, RuleResultSchema
from utils.case import dict_keys_to_snake

GLOBAL_COUNTRY = "GLOBAL"

INDUSTRY_WEIGHT = 0.4
REVENUE_WEIGHT = 0.3
CREDIT_WEIGHT = 0.2
PURPOSE_WEIGHT = 0.1

CREDIT_PROXIMITY_CEILING = 0.3
CREDIT_PROXIMITY_RANGE = 100

# Words in the use-of-funds text that point at each product category
PURPOSE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "working_capital": ("working capital", "operations", "payroll", "inventory", "cash flow", "expansion"),
    "term_loan": ("expansion", "growth", "renovation", "acquisition", "refinanc"),
    "line_of_credit": ("cash flow", "working capital", "seasonal", "flexib", "operations"),
    "equipment_financing": ("equipment", "machinery", "vehicle", "truck", "tools"),
    "invoice_factoring": ("invoice", "receivable", "factoring", "cash flow"),
    "purchase_order_financing": ("purchase order", "supplier", "inventory", "order"),
    "asset_based_lending": ("asset", "collateral", "inventory", "receivable"),
    "sba_loan": ("expansion", "real estate", "acquisition", "working capital"),
}


def _money(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"${value:,.0f}"


def _category_key(value: Optional[str]) -> str:
    return (value or "").strip().lower().replace(" ", "_").replace("-", "_")


def evaluate_product(application: dict[str, Any], product: dict[str, Any]) -> ProductMatchSchema:
    """
    Evaluate one product. Accepts application/product in either snake_case or camelCase.
    Product dicts carry lender_id and lender_name alongside the product columns.
    """
    application = dict_keys_to_snake(application) if application else {}
    product = dict_keys_to_snake(product) if product else {}

    rules: list[RuleResultSchema] = []
    rejection_reasons: list[str] = []

    # Hard rules
    app_country = (application.get("country") or "").strip().upper()
    product_country = (product.get("country") or "").strip().upper()
    met = product_country == GLOBAL_COUNTRY or (bool(app_country) and app_country == product_country)
    rules.append(
        RuleResultSchema(
            name="Country",
            kind="hard",
            met=met,
            reason=f"Product serves {product_country or 'N/A'}" if met else (
                "Application country unknown" if not app_country
                else f"Product serves {product_country}, application is {app_country}"
            ),
            expected=product_country or None,
            actual=app_country or None,
        )
    )
    if not met:
        rejection_reasons.append(f"Country {app_country or 'unknown'} not served (product: {product_country})")

    app_category = application.get("category")
    product_category = product.get("category")
    met = not app_category or _category_key(app_category) == _category_key(product_category)
    rules.append(
        RuleResultSchema(
            name="Category",
            kind="hard",
            met=met,
            reason="No category requested" if not app_category else (
                f"Category {product_category} matches" if met else f"Requested {app_category}, product is {product_category}"
            ),
            expected=product_category,
            actual=app_category,
        )
    )
    if not met:
        rejection_reasons.append(f"Category {app_category} does not match {product_category}")

    amount = application.get("requested_amount")
    min_amt = product.get("min_amount")
    max_amt = product.get("max_amount")
    if amount is None:
        met = False
    else:
        met = (min_amt is None or amount >= min_amt) and (max_amt is None or amount <= max_amt)
    range_str = f"{_money(min_amt) if min_amt is not None else 'any'} – {_money(max_amt) if max_amt is not None else 'any'}"
    rules.append(
        RuleResultSchema(
            name="Amount",
            kind="hard",
            met=met,
            reason=f"Within {range_str}" if met else f"Requested {_money(amount)} must be between {range_str}",
            expected=range_str,
            actual=_money(amount),
        )
    )
    if not met:
        rejection_reasons.append(f"Requested amount {_money(amount)} outside range {range_str}")

    # Soft rules
    score = 0.0

    industry = (application.get("industry") or "").strip().lower()
    product_industries = [str(i).strip().lower() for i in (product.get("industries") or []) if str(i).strip()]
    if not product_industries or "all" in product_industries or (industry and industry in product_industries):
        fraction, reason = 1.0, "Industry match"
    elif industry and _partial_industry_match(industry, product_industries):
        fraction, reason = 0.5, "Partial industry match"
    else:
        fraction, reason = 0.0, f"Industry {industry or 'unknown'} not in product list"
    score += INDUSTRY_WEIGHT * fraction
    rules.append(
        RuleResultSchema(
            name="Industry",
            kind="soft",
            met=fraction > 0,
            reason=reason,
            expected=", ".join(product_industries) or "All",
            actual=industry or None,
        )
    )

    revenue = application.get("annual_revenue")
    min_rev = product.get("min_annual_revenue")
    if min_rev is None:
        fraction, reason = 0.5, "No revenue minimum"
    elif revenue is not None and revenue >= min_rev:
        fraction, reason = 1.0, f"Revenue meets minimum {_money(min_rev)}"
    elif revenue is None:
        fraction, reason = 0.0, "Annual revenue not provided"
    else:
        fraction, reason = 0.0, f"Annual revenue {_money(revenue)} below minimum {_money(min_rev)}"
    score += REVENUE_WEIGHT * fraction
    rules.append(
        RuleResultSchema(
            name="Revenue",
            kind="soft",
            met=fraction > 0,
            reason=reason,
            expected=f"≥ {_money(min_rev)}" if min_rev is not None else None,
            actual=_money(revenue),
        )
    )

    credit = application.get("credit_score")
    min_credit = product.get("min_credit_score")
    if min_credit is None or (credit is not None and credit >= min_credit):
        fraction, reason = 1.0, "Meets credit requirement" if min_credit is not None else "No credit minimum"
    elif credit is None:
        fraction, reason = 0.0, "Credit score not provided"
    else:
        shortfall = min_credit - credit
        fraction = max(0.0, CREDIT_PROXIMITY_CEILING * (1 - shortfall / CREDIT_PROXIMITY_RANGE))
        reason = f"Credit score {credit} is {shortfall} points below minimum {min_credit}"
    score += CREDIT_WEIGHT * fraction
    rules.append(
        RuleResultSchema(
            name="Credit Score",
            kind="soft",
            met=fraction >= 1.0,
            reason=reason,
            expected=f"≥ {min_credit}" if min_credit is not None else None,
            actual=str(credit) if credit is not None else None,
        )
    )

    purpose = (application.get("use_of_funds") or "").lower()
    keywords = PURPOSE_KEYWORDS.get(_category_key(product_category), ())
    matched = next((k for k in keywords if k in purpose), None) if purpose else None
    if matched:
        score += PURPOSE_WEIGHT
    rules.append(
        RuleResultSchema(
            name="Purpose",
            kind="soft",
            met=matched is not None,
            reason=f"Use of funds mentions '{matched}'" if matched else "Use of funds does not point at this product",
            expected=product_category,
            actual=application.get("use_of_funds"),
        )
    )

    eligible = not rejection_reasons
    return ProductMatchSchema(
        product_id=str(product.get("id", "")),
        product_name=product.get("name", ""),
        lender_id=str(product.get("lender_id", "")),
        lender_name=product.get("lender_name", ""),
        category=product_category or "",
        country=product_country,
        eligible=eligible,
        score=round(min(1.0, score), 4),
        min_amount=min_amt,
        max_amount=max_amt,
        interest_rate=product.get("interest_rate"),
        term_length=product.get("term_length"),
        rejection_reasons=rejection_reasons,
        rule_results=rules,
    )


def _partial_industry_match(industry: str, product_industries: list[str]) -> bool:
    words = [w for w in industry.replace("/", " ").split() if len(w) > 2]
    return any(w in pi or pi in w for pi in product_industries for w in words)


def _sort_key(result: ProductMatchSchema) -> tuple:
    return (-result.score, result.lender_name.lower(), result.product_name.lower(), result.product_id)


def rank_products(
    application: dict[str, Any],
    products: list[dict[str, Any]],
) -> tuple[list[ProductMatchSchema], list[ProductMatchSchema]]:
    """
    Evaluate all products. Returns (eligible, ineligible), each ordered by score descending,
    then lender name, product name and product id.
    """
    results = [evaluate_product(application, p) for p in products]
    eligible = sorted((r for r in results if r.eligible), key=_sort_key)
    ineligible = sorted((r for r in results if not r.eligible), key=_sort_key)
    return eligible, ineligible
