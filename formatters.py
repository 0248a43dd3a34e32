"""Text renderings of records: JSON lines and the newsletter markdown block."""

from __future__ import annotations

import json

from models import Record

MARKDOWN_TEMPLATE = "### {title}\n_{authors}_<br/>\n{summary}<br/>\n_Published: {published}_, [{link}]({link})\n\n"


def to_json_line(record: Record) -> str:
    """Serialize one record as a newline-terminated JSON object."""
    payload = {
        "id": record.id,
        "title": record.title,
        "summary": record.summary,
        "authors": list(record.authors),
        "published": record.published.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "link": record.link,
    }
    return json.dumps(payload, ensure_ascii=False) + "\n"


def to_markdown(record: Record) -> str:
    return MARKDOWN_TEMPLATE.format(
        title=record.title,
        authors=", ".join(record.authors),
        summary=record.summary,
        published=record.published.strftime("%Y.%m.%d"),
        link=record.link,
    )
