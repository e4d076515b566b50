from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from database import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, index=True)
    # Stored trimmed. Unique so concurrent intake cannot create two rows for one name.
    business_name = Column(String(256), nullable=False, unique=True, index=True)
    legal_business_name = Column(String(256), nullable=True)
    business_type = Column(String(64), nullable=True)
    industry = Column(String(128), nullable=True)
    year_established = Column(String(16), nullable=True)
    ein = Column(String(32), nullable=True)
    address = Column(JSON, nullable=True)
    phone = Column(String(32), nullable=True)
    website = Column(String(256), nullable=True)
    description = Column(Text, nullable=True)
    number_of_employees = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    applications = relationship("Application", back_populates="business")
