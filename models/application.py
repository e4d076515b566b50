from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from database import Base


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, index=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="draft", index=True)
    stage = Column(String(32), nullable=False, default="New", index=True)
    requested_amount = Column(Numeric(14, 2, asdecimal=False), nullable=False)
    use_of_funds = Column(Text, nullable=True)
    product_category = Column(String(64), nullable=True, index=True)
    country = Column(String(16), nullable=True)
    # Contact email is deliberately not unique: one contact may apply many times
    contact_first_name = Column(String(128), nullable=True)
    contact_last_name = Column(String(128), nullable=True)
    contact_email = Column(String(256), nullable=False, index=True)
    contact_phone = Column(String(32), nullable=True)
    source = Column(String(64), nullable=True)
    # Resolved steps plus the verbatim submission under "submitted"
    form_data = Column(JSON, nullable=False)
    is_ready_for_lenders = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    business = relationship("Business", back_populates="applications")
    expected_documents = relationship(
        "ExpectedDocument", back_populates="application", cascade="all, delete-orphan"
    )
    documents = relationship("Document", back_populates="application", cascade="all, delete-orphan")


class ExpectedDocument(Base):
    """Checklist row created at intake. Not regenerated when the application changes."""

    __tablename__ = "expected_documents"
    __table_args__ = (UniqueConstraint("application_id", "document_type", name="uq_expected_documents_app_type"),)

    id = Column(String(36), primary_key=True, index=True)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(String(64), nullable=False)
    is_required = Column(Boolean, nullable=False, default=True)
    months = Column(Integer, nullable=True)
    label = Column(String(256), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    application = relationship("Application", back_populates="expected_documents")


class Document(Base):
    """Uploaded file metadata. Satisfies an ExpectedDocument by type equality only."""

    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, index=True)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(String(64), nullable=False, index=True)
    file_name = Column(String(512), nullable=False)
    storage_key = Column(String(1024), nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(128), nullable=True)
    status = Column(String(16), nullable=False, default="pending", index=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    application = relationship("Application", back_populates="documents")
