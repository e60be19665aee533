"""Ticket conversation: public replies and admin-only internal notes."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import Forbidden, ValidationFailed
from ..core.security import Principal
from ..core.statuses import TICKET_STATUS_IN_PROGRESS, TICKET_STATUS_WAITING_ON_CLIENT
from ..models.ticket import Ticket, TicketComment
from .tickets import get_ticket

logger = logging.getLogger(__name__)


def list_comments(db: Session, ticket_id: int, principal: Principal) -> list[TicketComment]:
    ticket = get_ticket(db, ticket_id, principal)
    stmt = select(TicketComment).where(
        TicketComment.ticket_id == ticket.id,
        TicketComment.deleted_at.is_(None),
    )
    if not principal.is_admin:
        stmt = stmt.where(TicketComment.is_internal.is_(False))
    return db.execute(stmt.order_by(TicketComment.created_at, TicketComment.id)).scalars().all()


def add_comment(
    db: Session,
    ticket_id: int,
    principal: Principal,
    content: str | None,
    is_internal: bool = False,
) -> tuple[Ticket, TicketComment]:
    """Post a reply and return ``(ticket, comment)``.

    A client answering a ticket that waits on them hands it back to the team
    by moving it to ``in_progress`` in the same commit.
    """
    content = (content or "").strip()
    if not content:
        raise ValidationFailed("Comment content is required")
    if is_internal and not principal.is_admin:
        raise Forbidden("Only admins can post internal notes")
    ticket = get_ticket(db, ticket_id, principal)
    comment = TicketComment(
        ticket_id=ticket.id,
        author_id=principal.user_id,
        author_role=principal.role,
        content=content,
        is_internal=bool(is_internal),
    )
    db.add(comment)
    if principal.is_client and ticket.status == TICKET_STATUS_WAITING_ON_CLIENT:
        ticket.status = TICKET_STATUS_IN_PROGRESS
    db.commit()
    db.refresh(comment)
    db.refresh(ticket)
    logger.info(
        "ticket.commented",
        extra={
            "extra_data": {
                "ticket_id": ticket.id,
                "comment_id": comment.id,
                "internal": comment.is_internal,
                "author_role": comment.author_role,
            }
        },
    )
    return ticket, comment
