from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import Conversation, Listing, Message, User
from app.services.errors import Forbidden, NotFound, ServiceError
from app.services.notifications import notify

MAX_MESSAGE_LENGTH = 4000


def start_conversation(buyer: User, listing_id: int) -> tuple[Conversation, bool]:
    """Get or create the buyer's conversation about a listing; returns ``(row, created)``."""
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        raise NotFound("Anunțul nu a fost găsit", code="LISTING_NOT_FOUND")
    if int(listing.seller_id) == int(buyer.id):
        raise ServiceError("Nu poți trimite mesaje propriului anunț", code="OWN_LISTING")
    existing = Conversation.query.filter_by(listing_id=int(listing.id), buyer_id=int(buyer.id), seller_id=int(listing.seller_id)).first()
    if existing is not None:
        return existing, False
    row = Conversation(listing_id=int(listing.id), buyer_id=int(buyer.id), seller_id=int(listing.seller_id))
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        row = Conversation.query.filter_by(listing_id=int(listing.id), buyer_id=int(buyer.id), seller_id=int(listing.seller_id)).first()
        return row, False
    return row, True


def get_conversation(user: User, conversation_id: int) -> Conversation:
    row = db.session.get(Conversation, int(conversation_id))
    if row is None:
        raise NotFound("Conversația nu a fost găsită", code="CONVERSATION_NOT_FOUND")
    if not row.has_participant(int(user.id)):
        raise Forbidden("Nu faci parte din această conversație", code="FORBIDDEN")
    return row


def send_message(sender: User, conversation_id: int, content: str) -> Message:
    content = (content or "").strip()
    if not content:
        raise ServiceError("Mesajul nu poate fi gol", code="EMPTY_MESSAGE")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ServiceError("Mesajul este prea lung", code="MESSAGE_TOO_LONG")
    conversation = get_conversation(sender, conversation_id)
    msg = Message(conversation_id=int(conversation.id), sender_id=int(sender.id), content=content)
    db.session.add(msg)
    conversation.updated_at = datetime.utcnow()
    preview = content if len(content) <= 80 else content[:77] + "..."
    notify(
        conversation.other_participant(int(sender.id)),
        "message",
        f"Mesaj nou de la {sender.display_name or 'un utilizator'}",
        preview,
        {"conversation_id": int(conversation.id), "listing_id": conversation.listing_id},
    )
    db.session.commit()
    return msg


def list_conversations(user: User) -> list[dict]:
    rows = (
        Conversation.query.filter(or_(Conversation.buyer_id == int(user.id), Conversation.seller_id == int(user.id)))
        .order_by(Conversation.updated_at.desc())
        .all()
    )
    if not rows:
        return []
    unread = dict(
        db.session.query(Message.conversation_id, func.count(Message.id))
        .filter(
            Message.conversation_id.in_([r.id for r in rows]),
            Message.sender_id != int(user.id),
            Message.is_read.is_(False),
        )
        .group_by(Message.conversation_id)
        .all()
    )
    items = []
    for row in rows:
        item = row.to_dict()
        last = Message.query.filter_by(conversation_id=int(row.id)).order_by(Message.created_at.desc(), Message.id.desc()).first()
        item["last_message"] = last.to_dict() if last else None
        item["unread_count"] = int(unread.get(row.id, 0))
        items.append(item)
    return items


def list_messages(user: User, conversation_id: int) -> list[Message]:
    conversation = get_conversation(user, conversation_id)
    return (
        Message.query.filter_by(conversation_id=int(conversation.id))
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def mark_read(user: User, conversation_id: int) -> int:
    conversation = get_conversation(user, conversation_id)
    updated = (
        Message.query.filter(
            Message.conversation_id == int(conversation.id),
            Message.sender_id != int(user.id),
            Message.is_read.is_(False),
        )
        .update({Message.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return int(updated or 0)
