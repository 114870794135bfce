from sqlalchemy import func, Index
from ..extensions import db
from .types import BigIntPK, utcnow


class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(BigIntPK, primary_key=True)
    conversation_id = db.Column("chat_id", db.BigInteger, db.ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    sender_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message_text = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    conversation = db.relationship("Conversation", back_populates="messages")
    sender = db.relationship("User")

    __table_args__ = (
        Index("idx_messages_chat_read", "chat_id", "is_read"),
    )
