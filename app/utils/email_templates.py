from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"

REWARD_SUBJECT = "🎉 Thank you! Here's your reward"
ABUSE_SUBJECT = "Survey Submission - Verification Notice"


@dataclass(frozen=True, slots=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


class EmailRenderer:
    """Renders the reward and abuse emails (HTML + plaintext)."""

    def __init__(self, brand_name: str, app_url: str, support_url: str, reward_description: str):
        self.context = {
            "brand_name": brand_name,
            "app_url": app_url,
            "app_host": app_url.split("://", 1)[-1].rstrip("/"),
            "support_url": support_url,
            "reward_description": reward_description,
        }
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render(self, name: str, subject: str, **extra) -> RenderedEmail:
        ctx = {**self.context, **extra}
        html = self.env.get_template(f"{name}.html").render(**ctx).strip()
        text = self.env.get_template(f"{name}.txt").render(**ctx).strip()
        return RenderedEmail(subject=subject, html=html, text=text)

    def reward(self, promo_code: str) -> RenderedEmail:
        return self._render("reward", REWARD_SUBJECT, promo_code=promo_code)

    def abuse(self) -> RenderedEmail:
        return self._render("abuse", ABUSE_SUBJECT)
