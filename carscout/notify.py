"""
Error notification over SMTP.
"""
import html
import json
import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Sequence

from .config import ScraperConfig
from .errors import DeliveryError
from .models import ExecutionResult, ExecutionStatus

logger = logging.getLogger(__name__)

BODY_TEMPLATE = """<html>
  <body style="font-family: Arial, sans-serif;">
    <h2>Script {script} finished with errors</h2>
    <p><strong>Results:</strong></p>
    <pre>{results}</pre>
    <p><strong>Payload:</strong></p>
    <pre>{payload}</pre>
    <p><strong>Screenshots:</strong></p>
    <pre>{screenshots}</pre>
  </body>
</html>"""


def screenshot_attachments(paths: Sequence[str]) -> List[Dict[str, Any]]:
    """Read screenshot files into attachment dicts; unreadable files are skipped."""
    attachments = []
    for path in paths:
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            logger.warning(f"Unable to read screenshot {path}: {e}")
            continue
        attachments.append({
            "filename": os.path.basename(path),
            "content": content,
            "maintype": "image",
            "subtype": "png",
        })
    return attachments


class EmailNotifier:
    def __init__(self, config: ScraperConfig, smtp_factory=smtplib.SMTP):
        self.config = config
        self._smtp_factory = smtp_factory

    @property
    def enabled(self) -> bool:
        return bool(self.config.smtp_host and self.config.email_from and self.config.email_to)

    def build_message(
        self,
        payload: Dict[str, Any],
        results: Sequence[ExecutionResult],
        screenshots: Sequence[str],
        attachments: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> EmailMessage:
        target = payload.get("scraper") or payload.get("platform") or ""
        script = f"{payload.get('type', 'scraper')}-{target}".rstrip("-")
        msg = EmailMessage()
        msg["Subject"] = f"Script {script} finished with errors"
        msg["From"] = self.config.email_from
        msg["To"] = ", ".join(self.config.email_to)

        results_json = json.dumps([r.to_dict() for r in results], indent=2)
        msg.set_content(f"Script {script} finished with errors.\n\n{results_json}")
        msg.add_alternative(BODY_TEMPLATE.format(
            script=html.escape(script),
            results=html.escape(results_json),
            payload=html.escape(json.dumps(payload, indent=2, default=str)),
            screenshots=html.escape(json.dumps(list(screenshots), indent=2)),
        ), subtype="html")

        for a in attachments or []:
            msg.add_attachment(
                a["content"], maintype=a["maintype"], subtype=a["subtype"], filename=a["filename"]
            )
        return msg

    def report_error(
        self,
        payload: Dict[str, Any],
        results: Sequence[ExecutionResult],
        screenshots: Sequence[str] = (),
        attachments: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> bool:
        """Email the failed executions. Returns False when nothing needed sending."""
        errors = [r for r in results if r.execution_status == ExecutionStatus.ERROR]
        if not errors:
            return False
        if not self.enabled:
            logger.info("Email notifications not configured, skipping error report")
            return False

        msg = self.build_message(payload, results, screenshots, attachments)
        logger.info(f"Sending email with {len(errors)} errors")
        try:
            with self._smtp_factory(self.config.smtp_host, self.config.smtp_port) as smtp:
                if self.config.smtp_username:
                    smtp.starttls()
                    smtp.login(self.config.smtp_username, self.config.smtp_password or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Error sending email: {e}") from e
        return True
