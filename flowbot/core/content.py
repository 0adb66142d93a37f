# flowbot/core/content.py
"""
Builders for outbound content descriptors.

The core never interprets these dicts; the transport renders them:
    {"text": ...}
    {"text": ..., "buttons": [{"id", "text"}], "footer": ...}
    {"text": ..., "sections": [...], "button_text": ..., "title": ..., "footer": ...}
    {"poll": {"question", "options", "allows_multiple"}}
    {"reaction": emoji, "message_id": ...}
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional, Sequence

from flowbot.core.engine.domain import Content


@dataclass
class Button:
    id: str
    text: str


@dataclass
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


@dataclass
class ListSection:
    title: str
    rows: list[ListRow] = field(default_factory=list)


# Common reaction emojis
REACTION_EMOJIS = {
    "like": "👍",
    "dislike": "👎",
    "love": "❤️",
    "laugh": "😂",
    "wow": "😮",
    "sad": "😢",
    "pray": "🙏",
    "party": "🎉",
    "fire": "🔥",
    "clap": "👏",
    "ok": "👌",
    "thinking": "🤔",
}


def buttons_content(text: str, buttons: Sequence[Button], footer: str | None = None) -> Content:
    if not buttons:
        raise ValueError("At least one button is required")
    content: Content = {
        "text": text,
        "buttons": [{"id": b.id or f"btn_{i}", "text": b.text} for i, b in enumerate(buttons)],
    }
    if footer:
        content["footer"] = footer
    return content


def list_content(
    text: str,
    button_text: str,
    sections: Sequence[ListSection],
    *,
    title: str | None = None,
    footer: str | None = None,
) -> Content:
    if not any(section.rows for section in sections):
        raise ValueError("A list needs at least one row")
    content: Content = {
        "text": text,
        "button_text": button_text,
        "sections": [asdict(section) for section in sections],
    }
    if title:
        content["title"] = title
    if footer:
        content["footer"] = footer
    return content


def poll_content(question: str, options: Sequence[str], *, allows_multiple: bool = False) -> Content:
    if len(options) < 2:
        raise ValueError("A poll needs at least two options")
    return {
        "poll": {
            "question": question,
            "options": list(options),
            "allows_multiple": allows_multiple,
        }
    }


def reaction_content(emoji: str, message_id: str) -> Content:
    return {"reaction": emoji, "message_id": message_id}
