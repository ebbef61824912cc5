"""Direct messages between two users, with read state."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_

from . import models
from .directory import get_active_user
from .errors import NotFound, PermissionDenied, ValidationFailed

logger = logging.getLogger(__name__)

Message = models.Message
MAX_MESSAGE_LENGTH = 1000
MESSAGE_TYPES = ('text', 'image', 'file')


def _between(user_id: int, other_id: int):
    return or_(
        and_(Message.sender_id == user_id, Message.recipient_id == other_id),
        and_(Message.sender_id == other_id, Message.recipient_id == user_id),
    )


def _involving(user_id: int):
    return or_(Message.sender_id == user_id, Message.recipient_id == user_id)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def validate_outgoing(sender_id: int, recipient_id, content) -> Tuple[int, str]:
    """Field checks shared by the HTTP and real-time send paths"""
    if recipient_id is None or recipient_id == '':
        raise ValidationFailed("Recipient is required")
    try:
        recipient_id = int(recipient_id)
    except (TypeError, ValueError):
        raise ValidationFailed("Invalid recipient")
    content = (content or '').strip()
    if not content:
        raise ValidationFailed("Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationFailed(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")
    if recipient_id == sender_id:
        raise ValidationFailed("You cannot send a message to yourself")
    return recipient_id, content


def send_message(session, sender_id: int, recipient_id, content, message_type: str = 'text',
                 attachment_url: Optional[str] = None) -> models.Message:
    recipient_id, content = validate_outgoing(sender_id, recipient_id, content)
    if message_type not in MESSAGE_TYPES:
        raise ValidationFailed("Invalid message type")

    recipient = session.query(models.UserAccount).filter(
        models.UserAccount.user_id == recipient_id,
        models.UserAccount.is_active.is_(True)
    ).first()
    if not recipient:
        raise NotFound("Recipient not found")

    message = Message(
        sender_id=sender_id,
        recipient_id=recipient.user_id,
        content=content,
        message_type=message_type,
        attachment_url=attachment_url,
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    logger.info(f"Message {message.message_id} sent from user {sender_id} to user {recipient.user_id}")
    return message


def get_message(session, message_id: int) -> models.Message:
    message = session.query(Message).filter(
        Message.message_id == message_id,
        Message.is_active.is_(True)
    ).first()
    if not message:
        raise NotFound("Message not found")
    return message


def conversation(session, user_id: int, other_id: int, page: int = 1,
                 limit: int = 50) -> Tuple[models.UserAccount, List[models.Message], int]:
    """Chronological page of the conversation; marks the other user's messages to me as read"""
    other = get_active_user(session, other_id)
    mark_conversation_read(session, user_id, other_id)

    query = session.query(Message).filter(_between(user_id, other_id), Message.is_active.is_(True))
    total = query.count()
    newest_first = query.order_by(Message.created_at.desc(), Message.message_id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return other, list(reversed(newest_first)), total


def conversations(session, user_id: int) -> List[dict]:
    """Latest message and unread count per counterpart, most recent conversation first"""
    messages = session.query(Message).filter(
        _involving(user_id),
        Message.is_active.is_(True)
    ).order_by(Message.created_at.desc(), Message.message_id.desc()).all()

    threads = {}
    for message in messages:
        other_id = message.recipient_id if message.sender_id == user_id else message.sender_id
        thread = threads.get(other_id)
        if thread is None:
            thread = threads[other_id] = {"last_message": message, "unread_count": 0}
        if message.recipient_id == user_id and not message.is_read:
            thread["unread_count"] += 1

    users = {}
    if threads:
        users = {u.user_id: u for u in session.query(models.UserAccount).filter(
            models.UserAccount.user_id.in_(list(threads)),
            models.UserAccount.is_active.is_(True)
        ).all()}
    return [
        {"other_user": users[other_id], **thread}
        for other_id, thread in threads.items()
        if other_id in users
    ]


def mark_read(session, message_id: int, user_id: int) -> models.Message:
    message = get_message(session, message_id)
    if message.recipient_id != user_id:
        raise PermissionDenied("You can only mark messages sent to you as read")
    if not message.is_read:
        message.is_read = True
        message.read_at = datetime.utcnow()
        session.commit()
        session.refresh(message)
    return message


def mark_conversation_read(session, user_id: int, other_id: int) -> int:
    """Mark every unread message from other_id to user_id as read; returns how many changed"""
    unread = session.query(Message).filter(
        Message.sender_id == other_id,
        Message.recipient_id == user_id,
        Message.is_read.is_(False),
        Message.is_active.is_(True)
    ).all()
    now = datetime.utcnow()
    for message in unread:
        message.is_read = True
        message.read_at = now
    if unread:
        session.commit()
    return len(unread)


def delete_message(session, message_id: int, user_id: int):
    message = get_message(session, message_id)
    if message.sender_id != user_id:
        raise PermissionDenied("You can only delete your own messages")
    message.is_active = False
    session.commit()


def search(session, user_id: int, q: Optional[str], other_id: Optional[int] = None, page: int = 1,
           limit: int = 20) -> Tuple[List[models.Message], int]:
    term = (q or '').strip()
    if len(term) < 2:
        raise ValidationFailed("Search query must be at least 2 characters")

    scope = _between(user_id, other_id) if other_id else _involving(user_id)
    query = session.query(Message).filter(
        scope,
        Message.is_active.is_(True),
        Message.content.ilike(f"%{_escape_like(term)}%", escape="\\")
    )
    total = query.count()
    messages = query.order_by(Message.created_at.desc(), Message.message_id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return messages, total


def stats(session, user_id: int) -> dict:
    rows = session.query(Message.sender_id, Message.recipient_id, Message.is_read).filter(
        _involving(user_id),
        Message.is_active.is_(True)
    ).all()
    counterparts = {recipient if sender == user_id else sender for sender, recipient, _ in rows}
    sent = sum(1 for sender, _, _ in rows if sender == user_id)
    received = sum(1 for _, recipient, _ in rows if recipient == user_id)
    unread = sum(1 for _, recipient, is_read in rows if recipient == user_id and not is_read)
    return {
        "total_conversations": len(counterparts),
        "unread_messages": unread,
        "messages_sent": sent,
        "messages_received": received,
        "total_messages": sent + received,
    }


def online_users(session, registry) -> List[models.UserAccount]:
    online_ids = registry.online_users()
    if not online_ids:
        return []
    return session.query(models.UserAccount).filter(
        models.UserAccount.user_id.in_(online_ids),
        models.UserAccount.is_active.is_(True)
    ).all()


def user_status(registry, user_id: int) -> dict:
    online = registry.is_online(user_id)
    return {"user_id": user_id, "is_online": online, "status": "online" if online else "offline"}
