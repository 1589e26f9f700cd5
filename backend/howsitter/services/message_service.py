"""
How Sitter Backend — Arrangement Message Threads
==================================================

What:  Read and append messages on an arrangement's thread.
Why:   The thread is the only channel between sitter and homeowner about a
       stay; it is append-only (no edit, no delete).
Who:   Arrangements router.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.exceptions import (
    AuthorizationError,
    DatabaseError,
    HowSitterError,
    ValidationError,
)
from howsitter.models.arrangement import Message
from howsitter.models.user import User
from howsitter.schemas.arrangement import MessageItem
from howsitter.services.arrangement_service import arrangement_service

logger = logging.getLogger(__name__)


def _item(message: Message, sender_name: str | None) -> MessageItem:
    return MessageItem(
        id=message.id,
        arrangement_id=message.arrangement_id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        sender_name=sender_name,
        message=message.body,
        created_at=message.created_at,
    )


class MessageService:

    async def list_messages(
        self, db: AsyncSession, user: User, arrangement_id: UUID
    ) -> List[MessageItem]:
        """Thread of an arrangement, oldest first, with sender names."""
        await arrangement_service.get_for_participant(db, user, arrangement_id)

        stmt = (
            select(Message, User.name)
            .outerjoin(User, User.id == Message.sender_id)
            .where(Message.arrangement_id == arrangement_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        rows = (await db.execute(stmt)).all()
        return [_item(m, name) for m, name in rows]

    async def send_message(
        self, db: AsyncSession, user: User, arrangement_id: UUID, body: str
    ) -> MessageItem:
        """
        Append a message. The receiver is the other party of the arrangement.

        Admins can read threads but cannot post: they are not a party.
        """
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message must not be empty", field="message")

        arrangement = await arrangement_service.get_for_participant(db, user, arrangement_id)
        if user.id == arrangement.sitter_id:
            receiver_id = arrangement.homeowner_id
        elif user.id == arrangement.homeowner_id:
            receiver_id = arrangement.sitter_id
        else:
            raise AuthorizationError("Only participants can post to this arrangement")

        try:
            message = Message(
                arrangement_id=arrangement.id,
                sender_id=user.id,
                receiver_id=receiver_id,
                body=text,
            )
            db.add(message)
            await db.flush()
        except HowSitterError:
            raise
        except Exception as e:
            logger.error("Failed to store message: %s", str(e), exc_info=True)
            raise DatabaseError(message="Failed to send message. Please try again.")

        logger.info("Message %s on arrangement %s from %s", message.id, arrangement.id, user.id)
        return _item(message, user.name)


message_service = MessageService()
