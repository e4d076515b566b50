from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func

from database import Base


class OutboxMessage(Base):
    """Side effect written in the same transaction as the data that caused it."""

    __tablename__ = "outbox_messages"

    id = Column(String(36), primary_key=True, index=True)
    kind = Column(String(64), nullable=False, index=True)
    application_id = Column(String(36), nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    # pending -> processing -> sent | pending (retry) | dead
    status = Column(String(16), nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=False, index=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
