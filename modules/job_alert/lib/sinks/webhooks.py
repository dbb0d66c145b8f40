from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import requests

from .. import render
from ..config import ConfigError
from ..http_client import HttpClient
from ..models import Delivered, JobRecord, NotifyContext, SinkResult
from .base import BaseSink, SinkError
from .registry import register


class _JsonPostSink(BaseSink):
    """
    Shared plumbing for sinks that POST one JSON document per alert.
    A fresh HttpClient is opened per send and closed before returning.
    """

    required: tuple[str, ...] = ()

    def validate(self) -> None:
        missing = [p for p in self.required if not str(self.params.get(p) or "").strip()]
        if missing:
            raise ConfigError(f"{self.kind} sink missing: {', '.join(missing)}")

    def target_url(self) -> str:
        raise NotImplementedError

    def payload(self, records: Sequence[JobRecord], context: NotifyContext) -> dict[str, Any]:
        raise NotImplementedError

    def send(self, records: Sequence[JobRecord], context: NotifyContext) -> SinkResult:
        body = self.payload(records, context)
        try:
            with HttpClient(timeout=self.timeout_sec, retries=0) as client:
                resp = client.post_json(self.target_url(), body)
        except requests.RequestException as e:
            raise SinkError(f"{self.kind} POST failed: {_describe(e)}") from e
        return Delivered(sink=self.name, details={"status": resp.status_code, "count": len(records)})


def _describe(e: requests.RequestException) -> str:
    # Never echo the URL: webhook URLs and bot tokens are credentials.
    resp = getattr(e, "response", None)
    if resp is not None:
        return f"HTTP {resp.status_code}"
    return type(e).__name__


@register
class DiscordSink(_JsonPostSink):
    """
    Discord channel webhook; one embed with up to 10 job fields.

    params:
      webhook_url (env DISCORD_WEBHOOK_URL)
    """

    kind = "discord"
    required = ("webhook_url",)

    def target_url(self) -> str:
        return str(self.params["webhook_url"]).strip()

    def payload(self, records: Sequence[JobRecord], context: NotifyContext) -> dict[str, Any]:
        return render.discord_payload(records, context)


@register
class TelegramSink(_JsonPostSink):
    """
    Telegram Bot API sendMessage (HTML parse mode).

    params:
      bot_token (env TELEGRAM_BOT_TOKEN)
      chat_id   (env TELEGRAM_CHAT_ID)
      api_base: optional, default https://api.telegram.org
    """

    kind = "telegram"
    required = ("bot_token", "chat_id")

    def target_url(self) -> str:
        base = str(self.params.get("api_base") or "https://api.telegram.org").rstrip("/")
        return f"{base}/bot{self.params['bot_token']}/sendMessage"

    def payload(self, records: Sequence[JobRecord], context: NotifyContext) -> dict[str, Any]:
        return {
            "chat_id": self.params["chat_id"],
            "text": render.telegram_text(records),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }


@register
class WebhookSink(_JsonPostSink):
    """
    Generic JSON webhook (n8n, Zapier, custom endpoints).

    params:
      url (env WEBHOOK_URL)
    Body: {"event": "new_jobs", "timestamp", "count", "keywords", "jobs": [...]}
    """

    kind = "webhook"
    required = ("url",)

    def target_url(self) -> str:
        return str(self.params["url"]).strip()

    def payload(self, records: Sequence[JobRecord], context: NotifyContext) -> dict[str, Any]:
        return render.webhook_payload(records, context)
