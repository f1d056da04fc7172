# unisocial/models/friend.py

import enum

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, UniqueConstraint, CheckConstraint

from unisocial.db.base_class import Base
from unisocial.models.user import utcnow


class FriendStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class FriendEdge(Base):
    """
    One side of a friendship. Rows are always written in mirrored pairs
    (user_id, peer_id) / (peer_id, user_id) inside one transaction.
    """

    __tablename__ = "friend_edges"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    peer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=FriendStatus.ACCEPTED.value)
    blocked_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Set only once a request has been accepted; survives a block
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "peer_id", name="uq_friend_edge_pair"),
        CheckConstraint("user_id != peer_id", name="chk_no_self_friend_edge"),
        CheckConstraint("status IN ('pending', 'accepted', 'blocked')", name="chk_friend_edge_status"),
    )


class FriendRequest(Base):
    """An inbound, unconfirmed request held by the recipient."""

    __tablename__ = "friend_requests"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("recipient_id", "sender_id", name="uq_friend_request_pair"),
        CheckConstraint("recipient_id != sender_id", name="chk_no_self_friend_request"),
    )
