import asyncio
import logging

import resend

from .receipts import Receipt

logger = logging.getLogger(__name__)


class ResendEmailSender:
    """Outbound mail through the Resend API. Without an API key every send is logged and skipped."""

    def __init__(self, api_key: str | None, from_email: str):
        self.enabled = bool(api_key)
        self.api_key = api_key
        self.from_email = from_email

    async def send(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        body_html: str | None = None,
        attachments: list[Receipt] | None = None,
    ):
        if not self.enabled:
            logger.info("email disabled; not sending", extra={"subject": subject})
            return None

        params = {
            "from": self.from_email,
            "to": [recipient],
            "subject": subject,
            "text": body_text,
            "html": body_html or f"<p>{body_text}</p>",
        }
        if attachments:
            params["attachments"] = [
                {"filename": a.filename, "content": list(a.content)} for a in attachments
            ]

        resend.api_key = self.api_key
        response = await asyncio.to_thread(resend.Emails.send, params)
        logger.info("email sent", extra={"subject": subject})
        return response
