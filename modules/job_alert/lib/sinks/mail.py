from __future__ import annotations

from collections.abc import Sequence

from service import emailer

from .. import render
from ..config import ConfigError
from ..models import Delivered, JobRecord, NotifyContext, SinkResult
from ..utils import split_csv
from .base import BaseSink, SinkError
from .registry import register


@register
class EmailSink(BaseSink):
    """
    HTML alert over SMTP (service.emailer).

    params:
      to: list[str] | "a@x,b@y"   (env EMAIL_TO / EMAIL_RECEIVER)
      cc, bcc: optional, same shapes
      subject_prefix: optional string prepended to the subject
    SMTP host/credentials come from the environment (see service.emailer).
    """

    kind = "email"

    @property
    def recipients(self) -> list[str]:
        return split_csv(self.params.get("to"))

    def validate(self) -> None:
        if not (self.recipients or split_csv(self.params.get("cc")) or split_csv(self.params.get("bcc"))):
            raise ConfigError("email sink needs at least one recipient (to/cc/bcc or EMAIL_TO).")
        smtp = emailer.resolve_smtp_settings()
        missing = [k for k in ("host", "username", "password") if not smtp.get(k)]
        if missing:
            raise ConfigError(f"email sink missing SMTP setting(s): {', '.join(missing)}")
        if not smtp.get("default_from_addr"):
            raise ConfigError("email sink has no from address (set SMTP_FROM or SMTP_USERNAME).")

    def send(self, records: Sequence[JobRecord], context: NotifyContext) -> SinkResult:
        subject = render.subject_line(records)
        prefix = str(self.params.get("subject_prefix") or "").strip()
        if prefix:
            subject = f"{prefix} {subject}"
        try:
            message_id = emailer.send_html(
                subject=subject,
                html=render.build_email(records, context),
                to=self.recipients,
                cc=split_csv(self.params.get("cc")),
                bcc=split_csv(self.params.get("bcc")),
                timeout=self.timeout_sec,
                # A retry's backoff would outlive the fanout deadline for this sink.
                retries=0,
            )
        except emailer.EmailSendError as e:
            raise SinkError(str(e)) from e
        return Delivered(sink=self.name, details={"message_id": message_id, "to": self.recipients})
