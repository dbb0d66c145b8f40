from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from . import utils
from .detector import matched_keywords
from .models import JobRecord, NotifyContext

ACCENT = "#FF5A5F"
DISCORD_MAX_FIELDS = 10
TELEGRAM_MAX_CHARS = 4000


def subject_line(records: Sequence[JobRecord]) -> str:
    n = len(records)
    return f"{n} New Job{'s' if n != 1 else ''} Available"


def console_text(records: Sequence[JobRecord]) -> str:
    lines = ["", "NEW JOBS FOUND!"]
    for i, r in enumerate(records, 1):
        lines.append("")
        lines.append(f"{i}. {r.title}")
        lines.append(f"   Department: {r.department}")
        lines.append(f"   Location: {r.location}")
        lines.append(f"   Link: {r.link}")
    lines.append("")
    return "\n".join(lines)


def build_cards(records: Sequence[JobRecord], keywords: Sequence[str]) -> str:
    """
    One card per record:
      title (linked) / department / location / matched keywords
    """
    cards: list[str] = []
    for r in records:
        link = utils.esc(r.link)
        hits = matched_keywords(r, keywords)
        hits_html = ""
        if hits:
            hits_html = "<p style='margin:4px 0'><strong>Matched:</strong> " + ", ".join(utils.esc(k) for k in hits) + "</p>"
        cards.append(
            f"<div style='border-left:4px solid {ACCENT};margin:12px 0;padding:10px 14px'>"
            f"<h3 style='margin:0 0 6px 0'><a href=\"{link}\" style='color:{ACCENT}'>{utils.esc(r.title)}</a></h3>"
            f"<p style='margin:4px 0'><strong>Department:</strong> {utils.esc(r.department)}</p>"
            f"<p style='margin:4px 0'><strong>Location:</strong> {utils.esc(r.location)}</p>"
            f"{hits_html}"
            "</div>"
        )
    return "\n".join(cards)


def build_email(records: Sequence[JobRecord], context: NotifyContext) -> str:
    """Full HTML document for the email sink."""
    n = len(records)
    intro = f"Found {n} matching position{'s' if n != 1 else ''}"
    if context.total_scraped:
        intro += f" out of {context.total_scraped} listed"
    intro += "."
    parts = [
        "<html>",
        '  <body style="font-family:ui-sans-serif,system-ui;line-height:1.5;margin:0;padding:8px">',
        "    <h2>New Job Openings</h2>",
        f"    <p>{utils.esc(intro)}</p>",
    ]
    if context.keywords:
        parts.append(f"    <p><strong>Keywords:</strong> {utils.esc(', '.join(context.keywords))}</p>")
    parts.append(build_cards(records, context.keywords))
    footer = f"Checked at {context.timestamp}"
    if context.source_url:
        footer += f" from {context.source_url}"
    parts.append(f"    <p style='color:#666;font-size:12px'>{utils.esc(footer)}</p>")
    parts.append("  </body>")
    parts.append("</html>")
    return "\n".join(parts)


def discord_payload(records: Sequence[JobRecord], context: NotifyContext) -> dict[str, Any]:
    n = len(records)
    embed = {
        "title": "New Job Openings!",
        "description": f"Found {n} new position{'s' if n != 1 else ''}",
        "color": int(ACCENT.lstrip("#"), 16),
        "fields": [
            {
                "name": r.title[:256],
                "value": f"**Department:** {r.department}\n**Location:** {r.location}\n[Apply Here]({r.link})",
                "inline": False,
            }
            for r in records[:DISCORD_MAX_FIELDS]
        ],
        "timestamp": context.timestamp,
    }
    if n > DISCORD_MAX_FIELDS:
        embed["footer"] = {"text": f"+{n - DISCORD_MAX_FIELDS} more not shown"}
    return {"embeds": [embed]}


def telegram_text(records: Sequence[JobRecord]) -> str:
    n = len(records)
    head = f"<b>New Job Openings!</b>\n\nFound {n} new position{'s' if n != 1 else ''}:\n"
    blocks: list[str] = []
    for r in records:
        blocks.append(
            f"<b>{utils.esc(r.title)}</b>\n"
            f"{utils.esc(r.department)} | {utils.esc(r.location)}\n"
            f'<a href="{utils.esc(r.link)}">Apply Here</a>\n'
        )
    text = head + "\n".join(blocks)
    if len(text) > TELEGRAM_MAX_CHARS:
        text = text[: TELEGRAM_MAX_CHARS - 20].rsplit("\n", 1)[0] + "\n..."
    return text


def webhook_payload(records: Sequence[JobRecord], context: NotifyContext) -> dict[str, Any]:
    return {
        "event": "new_jobs",
        "timestamp": context.timestamp,
        "count": len(records),
        "keywords": list(context.keywords),
        "jobs": [r.to_dict() for r in records],
    }
