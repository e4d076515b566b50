from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, func

from database import Base


class Transmission(Base):
    __tablename__ = "transmissions"

    id = Column(String(36), primary_key=True, index=True)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    lender_product_id = Column(String(64), ForeignKey("lender_products.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="sent")
    # Snapshot of what was sent
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
