from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class RuleResultSchema(BaseModel):
    name: str
    kind: Literal["hard", "soft"]
    met: bool
    reason: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class ProductMatchSchema(BaseModel):
    product_id: str
    product_name: str
    lender_id: str
    lender_name: str
    category: str
    country: str
    eligible: bool
    score: float
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None
    interest_rate: Optional[str] = None
    term_length: Optional[str] = None
    rejection_reasons: list[str] = Field(default_factory=list)
    rule_results: list[RuleResultSchema] = Field(default_factory=list)


class ProductCreate(BaseModel):
    """Create a product under a lender. Accepts camelCase or snake_case keys."""

    id: Optional[str] = None
    name: str
    category: str
    country: str = Field("CA", description="ISO country code or GLOBAL")
    min_amount: Optional[int] = Field(None, ge=0, alias="minAmount")
    max_amount: Optional[int] = Field(None, ge=0, alias="maxAmount")
    min_credit_score: Optional[int] = Field(None, ge=300, le=900, alias="minCreditScore")
    min_annual_revenue: Optional[int] = Field(None, ge=0, alias="minAnnualRevenue")
    industries: Optional[list[str]] = None
    doc_requirements: Optional[list[Any]] = Field(None, alias="docRequirements")
    interest_rate: Optional[str] = Field(None, alias="interestRate")
    term_length: Optional[str] = Field(None, alias="termLength")
    description: Optional[str] = None
    is_active: bool = Field(True, alias="isActive")

    model_config = {"populate_by_name": True}


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    country: Optional[str] = None
    min_amount: Optional[int] = Field(None, ge=0, alias="minAmount")
    max_amount: Optional[int] = Field(None, ge=0, alias="maxAmount")
    min_credit_score: Optional[int] = Field(None, ge=300, le=900, alias="minCreditScore")
    min_annual_revenue: Optional[int] = Field(None, ge=0, alias="minAnnualRevenue")
    industries: Optional[list[str]] = None
    doc_requirements: Optional[list[Any]] = Field(None, alias="docRequirements")
    interest_rate: Optional[str] = Field(None, alias="interestRate")
    term_length: Optional[str] = Field(None, alias="termLength")
    description: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")

    model_config = {"populate_by_name": True}


class LenderUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[str] = Field(None, alias="contactEmail")

    model_config = {"populate_by_name": True}


class LenderCreate(BaseModel):
    """Create a new lender (with optional products)."""
    name: str
    slug: str
    description: Optional[str] = None
    contact_email: Optional[str] = Field(None, alias="contactEmail")
    products: Optional[list[ProductCreate]] = Field(None, description="Optional initial products")

    model_config = {"populate_by_name": True}
