from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func

from database import Base


class StaffTask(Base):
    __tablename__ = "staff_tasks"

    id = Column(String(36), primary_key=True, index=True)
    title = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="open", index=True)
    priority = Column(String(16), nullable=False, default="normal")
    due_at = Column(DateTime(timezone=True), nullable=True)
    assigned_to = Column(String(128), nullable=True)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
