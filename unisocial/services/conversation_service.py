# unisocial/services/conversation_service.py

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from unisocial.models.conversation import Conversation, ConversationParticipant

logger = logging.getLogger(__name__)


class ConversationService:
    """
    Provisions direct-message conversations for the relationship core.

    Works inside the caller's unit of work: it adds and flushes, it never
    commits, so a rolled-back accept also rolls back the conversation.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_direct_conversation(self, user_a: int, user_b: int) -> Conversation:
        conversation = Conversation(type="DM", status="active", created_by=user_a)
        conversation.participants = [
            ConversationParticipant(user_id=user_a),
            ConversationParticipant(user_id=user_b),
        ]
        self.db.add(conversation)
        # assigns conversation.id without committing
        self.db.flush()
        logger.debug("Provisioned DM conversation %s for users %s and %s", conversation.id, user_a, user_b)
        return conversation

    def get_direct_conversation(self, user_a: int, user_b: int) -> Optional[Conversation]:
        pa = aliased(ConversationParticipant)
        pb = aliased(ConversationParticipant)
        stmt = (
            select(Conversation)
            .join(pa, pa.conversation_id == Conversation.id)
            .join(pb, pb.conversation_id == Conversation.id)
            .where(
                Conversation.type == "DM",
                Conversation.status == "active",
                pa.user_id == user_a,
                pb.user_id == user_b,
            )
            .order_by(Conversation.id.desc())
        )
        return self.db.execute(stmt).scalars().first()

    def close_direct_conversation(self, conversation_id: Optional[int]) -> bool:
        """Mark the DM as deleted. Returns False if there was nothing to close."""
        if conversation_id is None:
            return False
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None or conversation.status == "deleted":
            return False
        conversation.status = "deleted"
        return True
