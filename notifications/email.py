"""Transactional email through the Resend HTTP API."""

import asyncio
from pathlib import Path
from typing import Optional

import aiohttp
import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Config, get_config

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailSender:
    """Renders email templates and sends them through Resend.

    Sending never raises: delivery problems are logged so the operation
    that triggered the email is not affected.
    """

    def __init__(self, config: Optional[Config] = None, timeout: float = 12.0):
        """Initialize sender.

        Args:
            config: Configuration (defaults to the global one)
            timeout: HTTP timeout in seconds
        """
        self.config = config or get_config()
        self.timeout = timeout
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, **context) -> str:
        template = self.jinja_env.get_template(template_name)
        return template.render(**context)

    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send a single email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body

        Returns:
            True if Resend accepted the message
        """
        if not self.config.resend_api_key:
            logger.warning("email_skipped_missing_api_key", to=to, subject=subject)
            return False

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self.config.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self.config.email_from,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.error(
                            "email_rejected", to=to, status=response.status, error=body[:500]
                        )
                        return False

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("email_send_failed", to=to, error=str(e))
            return False

        logger.info("email_sent", to=to, subject=subject)
        return True

    async def send_magic_link(self, to: str, url: str) -> bool:
        html = self.render("magic_link.html.j2", url=url)
        return await self.send(to, "Ihr Anmeldelink für visicheck.ai", html)

    async def send_team_invitation(
        self, to: str, inviter_name: str, team_name: str, token: str, role: str
    ) -> bool:
        html = self.render(
            "team_invitation.html.j2",
            inviter_name=inviter_name,
            team_name=team_name,
            role_label="Owner" if role == "owner" else "Mitglied",
            invite_url=f"{self.config.base_url}/invite/{token}",
        )
        subject = f"{inviter_name} hat Sie zum Team „{team_name}“ eingeladen"
        return await self.send(to, subject, html)

    async def send_run_completed(
        self, to: str, run_id: str, domain_name: str, prompt_count: int, status: str
    ) -> bool:
        succeeded = status == "completed"
        html = self.render(
            "run_completed.html.j2",
            succeeded=succeeded,
            domain_name=domain_name,
            prompt_count=prompt_count,
            run_url=f"{self.config.base_url}/dashboard/runs/{run_id}",
        )
        if succeeded:
            subject = f"Ihr Visibility-Check für „{domain_name}“ ist fertig"
        else:
            subject = f"Visibility-Check für „{domain_name}“ fehlgeschlagen"
        return await self.send(to, subject, html)


_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    """Get the process-wide email sender."""
    global _sender
    if _sender is None:
        _sender = EmailSender()
    return _sender


def set_email_sender(sender: Optional[EmailSender]):
    global _sender
    _sender = sender
