from sqlalchemy import func
from ..extensions import db
from .types import BigIntPK, utcnow


class User(db.Model):
    """Read-side view of the user collaborator: identity, verification and display fields."""

    __tablename__ = "users"

    id = db.Column(BigIntPK, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120))
    profile_photo = db.Column(db.String(512))
    is_verified = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    is_admin = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    # Relationships
    items = db.relationship("Item", back_populates="owner", lazy=True)
    notifications = db.relationship(
        "Notification",
        back_populates="user",
        lazy=True,
        cascade="all, delete-orphan",
    )
    device_tokens = db.relationship(
        "DeviceToken",
        back_populates="user",
        lazy=True,
        cascade="all, delete-orphan",
    )

    @property
    def role(self) -> str:
        return "admin" if self.is_admin else "user"
