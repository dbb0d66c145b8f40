# service/emailer.py
from __future__ import annotations

import os
import smtplib
import ssl
import time
from collections.abc import Iterable
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

# ---- Errors -----------------------------------------------------------------


class EmailSendError(RuntimeError):
    """Raised when an email cannot be delivered."""

    def __init__(self, message: str, *, smtp_code: int | None = None):
        super().__init__(message)
        self.smtp_code = smtp_code

    @property
    def transient(self) -> bool:
        # 4xx replies are "try again later" per RFC 5321.
        return self.smtp_code is not None and 400 <= self.smtp_code < 500


# ---- Env / Settings ----------------------------------------------------------

# EMAIL_SERVICE shortcut -> (host, port), used when SMTP_HOST is unset
_SERVICE_HOSTS = {
    "gmail": ("smtp.gmail.com", 587),
    "outlook": ("smtp.office365.com", 587),
    "yahoo": ("smtp.mail.yahoo.com", 587),
}


def _getenv_any(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v != "":
            return v
    return default


def resolve_smtp_settings() -> dict:
    """
    Resolve SMTP settings from env.

    Preferred:
      - SMTP_HOST / SMTP_PORT (or EMAIL_SERVICE=gmail|outlook|yahoo)
      - SMTP_USERNAME / SMTP_PASSWORD
      - SMTP_FROM, SMTP_FROM_NAME
      - SMTP_USE_SSL = "true" | "false"
      - SMTP_STARTTLS = "true" | "false" | "auto" (default)

    Aliases:
      - EMAIL_USER / EMAIL_PASS
    """
    service = (_getenv_any("EMAIL_SERVICE", default="") or "").strip().lower()
    svc_host, svc_port = _SERVICE_HOSTS.get(service, ("", 587))

    host = _getenv_any("SMTP_HOST", default=svc_host)
    port = int(_getenv_any("SMTP_PORT", default=str(svc_port)) or svc_port)

    username = _getenv_any("SMTP_USERNAME", "EMAIL_USER")
    password = _getenv_any("SMTP_PASSWORD", "EMAIL_PASS")

    # Explicit SSL wins over STARTTLS
    use_ssl = (_getenv_any("SMTP_USE_SSL", default="false") or "false").strip().lower() == "true"
    starttls = (_getenv_any("SMTP_STARTTLS", default="auto") or "auto").strip().lower()
    if use_ssl:
        starttls = "false"

    default_from_addr = _getenv_any("SMTP_FROM", default=username or "")
    default_from_name = _getenv_any("SMTP_FROM_NAME", default="Job Alert")

    insecure_tls = (_getenv_any("SMTP_INSECURE_TLS", default="false") or "false").strip().lower() == "true"

    return {
        "host": host,
        "port": port,
        "username": username,
        "password": password,
        "use_ssl": use_ssl,
        "starttls": starttls,  # "true" | "false" | "auto"
        "default_from_addr": default_from_addr,
        "default_from_name": default_from_name,
        "insecure_tls": insecure_tls,
    }


# ---- Helpers ----------------------------------------------------------------


def _as_list(values: Iterable[str] | str | None) -> list[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    return [v for v in (str(s).strip() for s in values) if v]


def _should_starttls(port: int, starttls_setting: str) -> bool:
    if starttls_setting == "true":
        return True
    if starttls_setting == "false":
        return False
    # "auto": on, except for the usual cleartext relay ports
    return port not in (25, 2525)


def _build_message(
    *,
    subject: str,
    html: str,
    to: list[str],
    cc: list[str],
    from_name: str | None,
    from_addr: str,
    headers: dict[str, str] | None,
) -> EmailMessage:
    if not subject or not subject.strip():
        raise EmailSendError("Missing subject.")
    if not html or not html.strip():
        raise EmailSendError("Missing HTML body.")

    msg = EmailMessage()
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr

    # bcc never goes into headers
    if to:
        msg["To"] = ", ".join(to)
    if cc:
        msg["Cc"] = ", ".join(cc)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()

    if headers:
        for k, v in headers.items():
            if k.lower() in {"from", "to", "cc", "bcc", "subject", "date", "message-id"}:
                continue
            msg[k] = v

    msg.set_content("New job openings are listed in the HTML part of this message.")
    msg.add_alternative(html, subtype="html", charset="utf-8")
    return msg


def _open(settings: dict, timeout: float) -> smtplib.SMTP:
    host = settings["host"]
    port = settings["port"]
    context = ssl._create_unverified_context() if settings["insecure_tls"] else ssl.create_default_context()
    if settings["use_ssl"]:
        return smtplib.SMTP_SSL(host, port, context=context, timeout=timeout)
    server = smtplib.SMTP(host, port, timeout=timeout)
    try:
        server.ehlo()
        if _should_starttls(port, settings["starttls"]):
            server.starttls(context=context)
            server.ehlo()
    except BaseException:
        server.close()
        raise
    return server


def _send_via_smtp(msg: EmailMessage, *, rcpt_to: list[str], settings: dict, timeout: float) -> None:
    if not (settings["host"] and settings["username"] and settings["password"]):
        raise EmailSendError("Missing SMTP credentials or host. Expected SMTP_HOST and SMTP_USERNAME/SMTP_PASSWORD.")

    try:
        with _open(settings, timeout) as server:
            server.login(settings["username"], settings["password"])
            server.send_message(msg, to_addrs=rcpt_to)
    except smtplib.SMTPResponseException as e:
        raise EmailSendError(f"SMTP send failed: {e.smtp_code} {e.smtp_error!r}", smtp_code=e.smtp_code) from e
    except (smtplib.SMTPException, OSError) as e:
        raise EmailSendError(f"SMTP send failed: {e}") from e


# ---- Public API --------------------------------------------------------------


def send_html(
    *,
    subject: str,
    html: str,
    to: list[str] | str | None,
    cc: list[str] | str | None = None,
    bcc: list[str] | str | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
    retries: int = 1,
) -> str:
    """
    Send an HTML email.

    Returns:
        message_id (str): RFC-822 Message-ID generated by the sender.

    Raises:
        EmailSendError on any failure (connection/auth/SMTP/validation/etc).
        Only transient (4xx) replies are retried, `retries` times.
    """
    settings = resolve_smtp_settings()

    to_l = _as_list(to)
    cc_l = _as_list(cc)
    bcc_l = _as_list(bcc)
    rcpt_to = [*to_l, *cc_l, *bcc_l]
    if not rcpt_to:
        raise EmailSendError("No recipients (to/cc/bcc).")

    from_addr = (settings["default_from_addr"] or "").strip()
    if not from_addr:
        raise EmailSendError("No from address resolved. Set SMTP_FROM or SMTP_USERNAME.")

    msg = _build_message(
        subject=subject,
        html=html,
        to=to_l,
        cc=cc_l,
        from_name=(settings["default_from_name"] or "").strip(),
        from_addr=from_addr,
        headers=headers,
    )

    attempt = 0
    while True:
        try:
            _send_via_smtp(msg, rcpt_to=rcpt_to, settings=settings, timeout=timeout)
            return str(msg["Message-ID"])
        except EmailSendError as e:
            if not e.transient or attempt >= retries:
                raise
            attempt += 1
            time.sleep(2**attempt)
