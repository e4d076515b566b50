from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, func

from database import Base


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (UniqueConstraint("email", "application_id", name="uq_contacts_email_application"),)

    id = Column(String(36), primary_key=True, index=True)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="SET NULL"), nullable=True, index=True)
    business_id = Column(String(36), ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True, index=True)
    full_name = Column(String(256), nullable=False)
    email = Column(String(256), nullable=False, index=True)
    phone = Column(String(32), nullable=True)
    role = Column(String(32), nullable=False, default="Applicant")
    company_name = Column(String(256), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
