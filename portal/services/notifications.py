"""Outbound notifications: team chat, client email and the issue tracker.

Every channel is optional. A channel with no credentials is skipped, and a
channel that fails is logged and forgotten: notifications run after the
triggering change has been committed and never undo or block it.

Routers hand the notifier plain snapshots (``TicketNotice``/``PhaseNotice``)
taken while the database session is still open, since the calls themselves
run as background tasks once the response is on its way.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import AppSettings, get_settings
from ..core.statuses import ROLE_ADMIN, format_status_label
from ..models.phase import ProjectPhase
from ..models.project import Project
from ..models.ticket import Ticket

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
RESEND_EMAILS_URL = "https://api.resend.com/emails"
LINEAR_GRAPHQL_URL = "https://api.linear.app/graphql"

PRIORITY_EMOJI = {
    "urgent": ":rotating_light:",
    "high": ":exclamation:",
    "medium": ":warning:",
    "low": ":information_source:",
}

LINEAR_COMMENT_MUTATION = """
mutation CommentCreate($issueId: String!, $body: String!) {
  commentCreate(input: { issueId: $issueId, body: $body }) { success }
}
"""


def ticket_link(ticket_id: int, *, role: str = "admin", base_url: str | None = None) -> str:
    base = (base_url or get_settings().app_url).rstrip("/")
    return f"{base}/dashboard/{role}/tickets/{ticket_id}"


def project_link(project_id: int, *, role: str = "admin", base_url: str | None = None) -> str:
    base = (base_url or get_settings().app_url).rstrip("/")
    return f"{base}/dashboard/{role}/projects/{project_id}"


@dataclass(frozen=True)
class TicketNotice:
    ticket_id: int
    title: str
    priority: str
    type: str
    status: str
    client_name: str
    client_email: Optional[str] = None
    project_name: Optional[str] = None
    assigned_to: Optional[str] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None
    linear_issue_id: Optional[str] = None


@dataclass(frozen=True)
class PhaseNotice:
    project_id: int
    project_name: str
    phase_name: str
    old_status: str
    new_status: str
    client_name: str


def ticket_notice(ticket: Ticket) -> TicketNotice:
    client = ticket.client
    return TicketNotice(
        ticket_id=ticket.id,
        title=ticket.title,
        priority=ticket.priority,
        type=ticket.type,
        status=ticket.status,
        client_name=client.company_name if client is not None else "Unknown client",
        client_email=client.contact_email if client is not None else None,
        project_name=ticket.project.name if ticket.project is not None else None,
        assigned_to=ticket.assigned_to,
        resolved_by=ticket.resolved_by,
        resolution=ticket.resolution,
        linear_issue_id=ticket.linear_issue_id,
    )


def phase_notice(project: Project, phase: ProjectPhase, old_status: str) -> PhaseNotice:
    client = project.client
    return PhaseNotice(
        project_id=project.id,
        project_name=project.name,
        phase_name=phase.name,
        old_status=old_status,
        new_status=phase.status,
        client_name=client.company_name if client is not None else "Unknown client",
    )


def _context_line(notice: TicketNotice) -> str:
    text = f"Client: {notice.client_name}"
    if notice.project_name:
        text += f" | Project: {notice.project_name}"
    return text


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def _button(label: str, url: str, action_id: str) -> Dict[str, Any]:
    return {
        "type": "actions",
        "elements": [
            {
                "type": "button",
                "text": {"type": "plain_text", "text": label},
                "url": url,
                "action_id": action_id,
            }
        ],
    }


def _email_body(heading: str, paragraphs: List[str], link: str, link_label: str) -> str:
    body = "".join(f"<p>{html.escape(text)}</p>" for text in paragraphs if text)
    return (
        f"<h2>{html.escape(heading)}</h2>{body}"
        f'<p><a href="{html.escape(link, quote=True)}">{html.escape(link_label)}</a></p>'
        "<p>Digital Directions</p>"
    )


class Notifier:
    """Sends portal events to Slack, Resend and Linear.

    ``transport`` is handed to ``httpx.AsyncClient``; tests pass an
    ``httpx.MockTransport`` to capture requests.
    """

    def __init__(
        self,
        config: AppSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or get_settings()
        self.transport = transport

    @property
    def slack_enabled(self) -> bool:
        return bool(self.config.SLACK_BOT_TOKEN and self.config.SLACK_CHANNEL_ID)

    @property
    def email_enabled(self) -> bool:
        return bool(self.config.RESEND_API_KEY)

    @property
    def linear_enabled(self) -> bool:
        return bool(self.config.LINEAR_API_KEY)

    async def _post(self, channel: str, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Optional[httpx.Response]:
        timeout = httpx.Timeout(self.config.NOTIFY_TIMEOUT_SECONDS)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("%s notification failed: %s", channel, exc, exc_info=True)
            return None
        if response.status_code >= 400:
            logger.warning("%s notification rejected with status %s", channel, response.status_code)
            return None
        return response

    # ---- Slack

    async def send_slack(self, text: str, blocks: List[Dict[str, Any]]) -> bool:
        if not self.slack_enabled:
            logger.info("Slack not configured; skipping notification")
            return False
        response = await self._post(
            "slack",
            SLACK_POST_MESSAGE_URL,
            {"channel": self.config.SLACK_CHANNEL_ID, "text": text, "blocks": blocks},
            {"Authorization": f"Bearer {self.config.SLACK_BOT_TOKEN}"},
        )
        if response is None:
            return False
        # Slack reports API errors in the body with a 200 status.
        data = response.json()
        if not data.get("ok"):
            logger.warning("slack notification rejected: %s", data.get("error"))
            return False
        return True

    async def ticket_created(self, notice: TicketNotice) -> bool:
        emoji = PRIORITY_EMOJI.get(notice.priority, ":ticket:")
        context = f"Type: {notice.type} | Priority: {notice.priority.upper()}"
        if notice.project_name:
            context += f" | Project: {notice.project_name}"
        blocks = [
            _section(f"{emoji} *New Ticket from {notice.client_name}*\n*{notice.title}*"),
            _context(context),
            _button("View Ticket", ticket_link(notice.ticket_id, base_url=self.config.app_url), "view_ticket"),
        ]
        return await self.send_slack(f"New ticket from {notice.client_name}: {notice.title}", blocks)

    async def ticket_assigned(self, notice: TicketNotice) -> bool:
        assignee = notice.assigned_to or "Someone"
        blocks = [
            _section(f":point_right: *{assignee}* claimed ticket\n*{notice.title}*"),
            _context(_context_line(notice)),
        ]
        sent = await self.send_slack(f"{assignee} claimed ticket: {notice.title}", blocks)
        await self.linear_comment(notice, f"Assigned to {assignee} in the client portal.")
        return sent

    async def ticket_resolved(self, notice: TicketNotice) -> bool:
        resolver = notice.resolved_by or "Someone"
        blocks = [
            _section(f":white_check_mark: *Ticket Resolved* by {resolver}\n*{notice.title}*"),
            _context(_context_line(notice)),
        ]
        sent = await self.send_slack(f"Ticket resolved: {notice.title}", blocks)
        await self.linear_comment(notice, f"Resolved in the client portal:\n\n{notice.resolution or ''}".strip())
        if notice.client_email:
            await self.send_email(
                notice.client_email,
                f"Ticket Resolved: {notice.title}",
                _email_body(
                    "Your ticket has been resolved",
                    [notice.title, notice.resolution or ""],
                    ticket_link(notice.ticket_id, role="client", base_url=self.config.app_url),
                    "View ticket",
                ),
            )
        return sent

    async def phase_status_changed(self, notice: PhaseNotice) -> bool:
        old_label = format_status_label(notice.old_status)
        new_label = format_status_label(notice.new_status)
        blocks = [
            _section(
                f":arrows_counterclockwise: *{notice.project_name}*: {notice.phase_name} "
                f"moved from {old_label} to *{new_label}*"
            ),
            _context(f"Client: {notice.client_name}"),
            _button("View Project", project_link(notice.project_id, base_url=self.config.app_url), "view_project"),
        ]
        return await self.send_slack(f"{notice.project_name}: {notice.phase_name} is now {new_label}", blocks)

    # ---- Email

    async def send_email(self, to: str, subject: str, body_html: str) -> bool:
        if not self.email_enabled:
            logger.info("Email not configured; skipping '%s'", subject)
            return False
        response = await self._post(
            "email",
            RESEND_EMAILS_URL,
            {"from": self.config.EMAIL_FROM, "to": [to], "subject": subject, "html": body_html},
            {"Authorization": f"Bearer {self.config.RESEND_API_KEY}"},
        )
        return response is not None

    async def ticket_reply(self, notice: TicketNotice, author_role: str, content: str, is_internal: bool) -> bool:
        """Email the client when the team posts a public reply."""
        if is_internal or author_role != ROLE_ADMIN or not notice.client_email:
            return False
        preview = content if len(content) <= 500 else content[:497] + "..."
        return await self.send_email(
            notice.client_email,
            f"New Response: {notice.title}",
            _email_body(
                "You have a new response on your ticket",
                [notice.title, preview],
                ticket_link(notice.ticket_id, role="client", base_url=self.config.app_url),
                "View conversation",
            ),
        )

    # ---- Linear

    async def linear_comment(self, notice: TicketNotice, body: str) -> bool:
        if not notice.linear_issue_id or not self.linear_enabled:
            return False
        response = await self._post(
            "linear",
            LINEAR_GRAPHQL_URL,
            {"query": LINEAR_COMMENT_MUTATION, "variables": {"issueId": notice.linear_issue_id, "body": body}},
            {"Authorization": self.config.LINEAR_API_KEY},
        )
        if response is None:
            return False
        data = response.json()
        if data.get("errors"):
            logger.warning("linear notification rejected: %s", data["errors"])
            return False
        return True


def get_notifier() -> Notifier:
    return Notifier()


__all__ = [
    "Notifier",
    "PhaseNotice",
    "TicketNotice",
    "get_notifier",
    "phase_notice",
    "project_link",
    "ticket_link",
    "ticket_notice",
]
