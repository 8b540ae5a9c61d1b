"""Email tool: send mail through the Resend HTTP API."""

import html
import logging

import httpx
from pydantic import Field

from chat_agent.config import settings
from chat_agent.tools.base import ToolParams, ToolResult
from chat_agent.tools.registry import registry

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"

EMAIL_TEMPLATE = """\
<div>
  <h1>{subject}</h1>
  <p>Hello {first_name},</p>
  <p>{message}</p>
  <p>Best regards,</p>
  <p>Your AI Assistant</p>
</div>
"""


def render_email(subject: str, first_name: str, message: str) -> str:
    """Fill the HTML body template, escaping every field."""
    return EMAIL_TEMPLATE.format(
        subject=html.escape(subject),
        first_name=html.escape(first_name),
        message=html.escape(message),
    )


class SendEmailParams(ToolParams):
    to: str = Field(description="Email address of the recipient")
    subject: str = Field(description="Subject line of the email")
    first_name: str = Field(description="First name of the recipient")
    message: str = Field(description="Main content of the email")


@registry.tool(
    name="send_email",
    description="Send an email to a recipient using the Resend service.",
    category="email",
    params_model=SendEmailParams,
    requires_confirmation=True,
)
async def send_email(to: str, subject: str, first_name: str, message: str) -> ToolResult:
    if not settings.resend_api_key:
        return ToolResult(error="Email is not configured (RESEND_API_KEY missing).")

    body = {
        "from": settings.email_from,
        "to": [to],
        "subject": subject,
        "html": render_email(subject, first_name, message),
    }
    headers = {"Authorization": f"Bearer {settings.resend_api_key}"}

    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            resp = await client.post(RESEND_EMAILS_URL, headers=headers, json=body)

        if resp.status_code not in (200, 201):
            return ToolResult(
                error=f"Failed to send email: Resend returned {resp.status_code}: {resp.text[:300]}"
            )

        email_id = resp.json().get("id", "") if resp.text else ""
        logger.info("Sent email %s to %s", email_id, to)
        return ToolResult(data={"sent": True, "to": to, "subject": subject, "id": email_id})
    except httpx.HTTPError as exc:
        logger.exception("Sending email failed")
        return ToolResult(error=f"Error sending email: {exc}")
