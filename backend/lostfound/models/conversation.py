from sqlalchemy import UniqueConstraint, func, Index
from ..extensions import db
from .types import BigIntPK, utcnow


class Conversation(db.Model):
    __tablename__ = "chats"

    id = db.Column(BigIntPK, primary_key=True)
    item_id = db.Column(db.BigInteger, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    # Participants are stored as (min, max) so the unique constraint covers the unordered pair
    user1_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user2_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    last_message = db.Column(db.Text)
    last_message_time = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    item = db.relationship("Item")
    user1 = db.relationship("User", foreign_keys=[user1_id])
    user2 = db.relationship("User", foreign_keys=[user2_id])
    messages = db.relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("item_id", "user1_id", "user2_id", name="uq_chats_item_pair"),
        Index("idx_chats_user1", "user1_id"),
        Index("idx_chats_user2", "user2_id"),
    )

    def has_participant(self, user_id: int) -> bool:
        return int(user_id) in (int(self.user1_id), int(self.user2_id))

    def other_participant(self, user_id: int) -> int:
        return int(self.user2_id) if int(self.user1_id) == int(user_id) else int(self.user1_id)
