from sqlalchemy import func, Index
from ..extensions import db
from .enums import outbox_status_enum
from .types import BigIntPK, utcnow


class OutboxEvent(db.Model):
    """Side effect recorded in the same transaction as the write that caused it."""

    __tablename__ = "outbox_events"

    id = db.Column(BigIntPK, primary_key=True)
    topic = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(outbox_status_enum, nullable=False, default="pending", server_default="pending")
    attempts = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    last_error = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    processed_at = db.Column(db.DateTime(timezone=True))

    __table_args__ = (
        Index("idx_outbox_status_created", "status", "created_at"),
    )
