from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .models import CONTENT_HASH, STRATEGIES
from .utils import getenv_str, split_csv, truthy

DEFAULT_URL = "https://careers.airbnb.com/positions/?_departments=engineering&_offices=bangalore-india"
DEFAULT_SQLITE_PATH = "/app/local/state/job_alert.db"
DEFAULT_FILE_LOG_PATH = "./job-alerts.log"

SINK_KINDS = ("console", "file", "email", "discord", "telegram", "webhook")

# Sinks that leave the machine; JOB_ALERT_DRY_RUN turns these off.
OUTBOUND_KINDS = frozenset({"email", "discord", "telegram", "webhook"})

# kind -> (enabled env var, enabled default, {param: env var names})
_ENV_DEFAULTS: dict[str, tuple[str, bool, dict[str, tuple[str, ...]]]] = {
    "console": ("CONSOLE_ENABLED", True, {}),
    "file": ("FILE_LOG_ENABLED", False, {"path": ("LOG_FILE_PATH",)}),
    "email": ("EMAIL_ENABLED", False, {"to": ("EMAIL_TO", "EMAIL_RECEIVER")}),
    "discord": ("DISCORD_ENABLED", False, {"webhook_url": ("DISCORD_WEBHOOK_URL",)}),
    "telegram": (
        "TELEGRAM_ENABLED",
        False,
        {"bot_token": ("TELEGRAM_BOT_TOKEN",), "chat_id": ("TELEGRAM_CHAT_ID",)},
    ),
    "webhook": ("WEBHOOK_ENABLED", False, {"url": ("WEBHOOK_URL",)}),
}


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings or sink."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class SinkConfig:
    """
    One notification channel.
    - kind: "console" | "file" | "email" | "discord" | "telegram" | "webhook"
    - enabled: whether the fanout should call it at all
    - params: channel parameters with *_env indirections already resolved
    """

    kind: str
    enabled: bool = False
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Settings:
    """
    Canonical configuration for a 'job_alert' watcher.

    Built once per distinct kwargs set; the watcher keeps it for the process
    lifetime so sink validation and state loading happen only at startup.
    """

    url: str = DEFAULT_URL
    keywords: tuple[str, ...] = ()
    strategy: str = CONTENT_HASH

    scraper: str = "careers_page"
    scraper_params: dict[str, Any] = field(default_factory=dict)

    sqlite_path: str = DEFAULT_SQLITE_PATH
    request_timeout_sec: float = 30.0
    sink_timeout_sec: float = 20.0
    skip_network: bool = False
    dry_run: bool = False

    sinks: tuple[SinkConfig, ...] = ()

    # ------------- convenience -------------
    def enabled_kinds(self) -> list[str]:
        return [sc.kind for sc in self.sinks if sc.enabled]

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with env fallbacks and validation.

        Expected kwargs (all optional):

            url: str                    # env JOBS_URL
            keywords: list[str] | str   # env JOB_KEYWORDS (comma-separated)
            strategy: "content_hash" | "identity_set"   # env DETECTION_STRATEGY
            scraper: str = "careers_page"
            scraper_params: dict
            sqlite_path: str            # env JOB_ALERT_DB
            request_timeout_sec: float = 30
            sink_timeout_sec: float = 20
            skip_network: bool = false
            notifications: {kind: {"enabled": bool, <param>: ..., <param>_env: "ENV_NAME"}}
        """
        kw = dict(kwargs or {})

        url = str(kw.get("url") or getenv_str("JOBS_URL") or DEFAULT_URL).strip()

        raw_keywords = kw.get("keywords")
        if raw_keywords is None:
            raw_keywords = getenv_str("JOB_KEYWORDS")
        keywords = tuple(split_csv(raw_keywords))

        strategy = str(kw.get("strategy") or getenv_str("DETECTION_STRATEGY") or CONTENT_HASH).strip().lower()

        scraper_params = kw.get("scraper_params") or {}
        if not isinstance(scraper_params, dict):
            raise ConfigError("'scraper_params' must be an object.")

        dry_run = truthy(kw.get("dry_run")) or truthy(os.getenv("JOB_ALERT_DRY_RUN"))

        try:
            request_timeout = _seconds(kw.get("request_timeout_sec"), 30.0)
            sink_timeout = _seconds(kw.get("sink_timeout_sec"), 20.0)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Timeouts must be numbers: {e}") from e

        settings = cls(
            url=url,
            keywords=keywords,
            strategy=strategy,
            scraper=str(kw.get("scraper") or "careers_page").strip().lower(),
            scraper_params=dict(scraper_params),
            sqlite_path=str(kw.get("sqlite_path") or getenv_str("JOB_ALERT_DB") or DEFAULT_SQLITE_PATH),
            request_timeout_sec=request_timeout,
            sink_timeout_sec=sink_timeout,
            skip_network=truthy(kw.get("skip_network")),
            dry_run=dry_run,
            sinks=parse_notifications(kw.get("notifications"), dry_run=dry_run),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def parse_notifications(value: Any, *, dry_run: bool = False) -> tuple[SinkConfig, ...]:
    """
    Resolve one SinkConfig per known kind.

    Per-kind precedence: explicit block value > "<param>_env" indirection >
    the conventional environment variable.
    """
    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        raise ConfigError("'notifications' must be an object keyed by sink kind.")

    unknown = set(value.keys()) - set(SINK_KINDS)
    if unknown:
        raise ConfigError(f"Unknown notification kind(s): {sorted(unknown)}")

    out: list[SinkConfig] = []
    for kind in SINK_KINDS:
        block = value.get(kind) or {}
        if not isinstance(block, Mapping):
            raise ConfigError(f"notifications.{kind} must be an object.")

        enabled_env, enabled_default, param_envs = _ENV_DEFAULTS[kind]

        if "enabled" in block:
            enabled = truthy(block["enabled"])
        else:
            env_val = os.getenv(enabled_env)
            enabled = truthy(env_val) if env_val not in (None, "") else enabled_default

        params: dict[str, Any] = {}
        for k, v in block.items():
            if k == "enabled":
                continue
            if k.endswith("_env") and isinstance(v, str):
                # Value names the env var holding the secret; keep the name out of params.
                params[k[: -len("_env")]] = os.getenv(v.strip(), "")
                continue
            params[k] = v

        for param, env_names in param_envs.items():
            if params.get(param) in (None, "", []):
                for name in env_names:
                    env_val = getenv_str(name)
                    if env_val:
                        params[param] = env_val
                        break

        if dry_run and kind in OUTBOUND_KINDS:
            enabled = False

        out.append(SinkConfig(kind=kind, enabled=enabled, params=params))
    return tuple(out)


def _seconds(value: Any, default: float) -> float:
    # 0 is kept so validation can reject it; only a missing value takes the default.
    return default if value is None or value == "" else float(value)


def _validate_settings(s: Settings) -> None:
    if s.strategy not in STRATEGIES:
        raise ConfigError(f"'strategy' must be one of {list(STRATEGIES)} (got {s.strategy!r}).")
    if not s.url and s.scraper == "careers_page":
        raise ConfigError("'url' cannot be empty for the careers_page scraper.")
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.request_timeout_sec <= 0 or s.sink_timeout_sec <= 0:
        raise ConfigError("Timeouts must be > 0.")
