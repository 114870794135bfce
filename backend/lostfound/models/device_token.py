from sqlalchemy import func
from ..extensions import db
from .types import BigIntPK, utcnow


class DeviceToken(db.Model):
    __tablename__ = "device_tokens"

    id = db.Column(BigIntPK, primary_key=True)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Unique across users: re-registration moves the token to the new owner
    token = db.Column(db.String(255), unique=True, nullable=False)
    platform = db.Column(db.String(32))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    user = db.relationship("User", back_populates="device_tokens")
