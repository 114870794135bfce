from sqlalchemy import UniqueConstraint, func, Index
from ..extensions import db
from .types import BigIntPK, utcnow


class Match(db.Model):
    __tablename__ = "matches"

    id = db.Column(BigIntPK, primary_key=True)
    lost_item_id = db.Column(db.BigInteger, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    found_item_id = db.Column(db.BigInteger, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    score = db.Column(db.Integer, nullable=False)
    # One flag per owner; each is committed together with that owner's notification row
    notified_lost = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    notified_found = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    lost_item = db.relationship("Item", foreign_keys=[lost_item_id], back_populates="lost_matches")
    found_item = db.relationship("Item", foreign_keys=[found_item_id], back_populates="found_matches")

    __table_args__ = (
        UniqueConstraint("lost_item_id", "found_item_id", name="uq_matches_lost_found"),
        Index("idx_matches_lost", "lost_item_id"),
        Index("idx_matches_found", "found_item_id"),
    )

    @property
    def notified(self) -> bool:
        return bool(self.notified_lost and self.notified_found)
