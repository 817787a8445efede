"""Plain-text and HTML renderings of a ``Digest``."""

from __future__ import annotations

from typing import Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from paperfeed.models import Digest

_env = Environment(
    loader=PackageLoader("paperfeed", "templates"),
    autoescape=select_autoescape(["html"]),
)

RULE = "=" * 72
THIN_RULE = "-" * 72


def render_html(digest: Optional[Digest]) -> str:
    """HTML page for *digest*, or a placeholder page when it is ``None``."""
    return _env.get_template("digest.html").render(digest=digest)


def render_text(digest: Digest) -> str:
    lines = [
        RULE,
        f"Daily Feed Digest: {digest.topics_display}",
        f"Date: {digest.generated_at.strftime('%Y-%m-%d %H:%M')}",
        RULE,
        "",
        "Overview:",
        digest.overview,
        "",
    ]
    for i, s in enumerate(digest.summaries, start=1):
        lines.extend([
            THIN_RULE,
            f"{i}. {s.paper.title}",
            f"   Authors: {', '.join(s.paper.authors)}",
            f"   URL: {s.paper.url}",
            f"   Category: {s.paper.category}",
            "",
            f"   {s.summary}",
            "",
        ])
        if s.key_points:
            lines.append("   Key Points:")
            lines.extend(f"   - {kp}" for kp in s.key_points)
        lines.append("")
    lines.append(RULE)
    return "\n".join(lines)
