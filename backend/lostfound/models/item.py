from sqlalchemy import func, Index
from ..extensions import db
from .enums import item_type_enum, item_status_enum
from .types import BigIntPK, utcnow


class Item(db.Model):
    __tablename__ = "items"

    id = db.Column(BigIntPK, primary_key=True)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = db.Column(item_type_enum, nullable=False)
    item_name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(50), nullable=False)
    brand = db.Column(db.String(100))
    location = db.Column(db.String(200), nullable=False)
    occurred_on = db.Column(db.Date, nullable=False)
    occurred_time = db.Column(db.Time)
    description = db.Column(db.Text)
    status = db.Column(item_status_enum, nullable=False, default="active", server_default="active")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    owner = db.relationship("User", back_populates="items")
    lost_matches = db.relationship(
        "Match",
        back_populates="lost_item",
        foreign_keys="Match.lost_item_id",
        cascade="all, delete-orphan",
    )
    found_matches = db.relationship(
        "Match",
        back_populates="found_item",
        foreign_keys="Match.found_item_id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_items_type_status", "type", "status"),
        Index("idx_items_category_color", "category", "color"),
        Index("idx_items_occurred_on", "occurred_on"),
    )

    @property
    def opposite_type(self) -> str:
        return "found" if self.type == "lost" else "lost"
