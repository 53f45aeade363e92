"""Transactional email through Resend.

With no RESEND_API_KEY configured nothing leaves the process: the send is
logged and reported back as a dry run.
"""

import html
import logging
import re

import httpx

from astralis.core.config import settings

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"
SEND_TIMEOUT_SECONDS = 20.0

_HIDDEN_BLOCK_RE = re.compile(r"<(script|style)\b.*?</\1\s*>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


class EmailSendError(Exception):
    """Resend answered with a non-2xx status."""


def redact_address(address: str | None) -> str:
    """`jordan@example.com` -> `jor***@example.com` for logs."""
    if not address:
        return ""
    local, at, domain = address.partition("@")
    return f"{local[:3]}***{at}{domain}"


def html_to_text(body: str) -> str:
    """Plain-text part derived from the HTML body."""
    stripped = _TAG_RE.sub(" ", _HIDDEN_BLOCK_RE.sub("", body))
    return html.unescape(_SPACE_RE.sub(" ", stripped).strip())


async def send_email(
    *,
    to_email: str,
    subject: str,
    html: str,
    text: str | None = None,
    idempotency_key: str | None = None,
) -> dict:
    """Deliver one message; returns {"success", "message_id", "dry_run"}.

    EmailSendError is raised for a rejected send and httpx.HTTPError for a
    transport failure; the job worker turns either into a retry.
    """
    if not settings.RESEND_API_KEY:
        logger.info("Email dry run: to=%s subject=%r", redact_address(to_email), subject)
        return {"success": True, "message_id": None, "dry_run": True}

    headers = {"Authorization": f"Bearer {settings.RESEND_API_KEY}"}
    if idempotency_key:
        # Resend drops repeats of a key, so a retried job cannot double-send
        headers["Idempotency-Key"] = idempotency_key
    message = {
        "from": settings.EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
        "text": text if text is not None else html_to_text(html),
    }

    async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS) as client:
        response = await client.post(RESEND_EMAILS_URL, json=message, headers=headers)

    if response.is_error:
        raise EmailSendError(f"Resend returned {response.status_code}: {response.text[:200]}")

    message_id = response.json().get("id")
    logger.info("Email sent: to=%s id=%s", redact_address(to_email), message_id)
    return {"success": True, "message_id": message_id, "dry_run": False}
