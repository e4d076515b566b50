from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from database import Base


class Lender(Base):
    __tablename__ = "lenders"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(256), nullable=False)
    slug = Column(String(128), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    contact_email = Column(String(256), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    products = relationship("LenderProduct", back_populates="lender", cascade="all, delete-orphan")


class LenderProduct(Base):
    __tablename__ = "lender_products"

    id = Column(String(64), primary_key=True, index=True)
    lender_id = Column(String(64), ForeignKey("lenders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    category = Column(String(64), nullable=False, index=True)
    # ISO country code, or GLOBAL
    country = Column(String(16), nullable=False, default="CA")
    min_amount = Column(Integer, nullable=True)
    max_amount = Column(Integer, nullable=True)
    min_credit_score = Column(Integer, nullable=True)
    min_annual_revenue = Column(Integer, nullable=True)
    industries = Column(JSON, nullable=True)
    # List of document requirements: strings or {key, required, months, label}
    doc_requirements = Column(JSON, nullable=True)
    interest_rate = Column(String(64), nullable=True)
    term_length = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    lender = relationship("Lender", back_populates="products")
