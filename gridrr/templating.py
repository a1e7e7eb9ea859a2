"""Jinja2 environment for gridrr templates."""

from __future__ import annotations

from datetime import datetime
from importlib import resources

from jinja2 import Environment, FileSystemLoader, select_autoescape

_ENV: Environment | None = None


def _long_date(value: datetime | None) -> str:
    """Format a timestamp as ``January 5, 2024``."""
    if value is None:
        return ""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml", "html.j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _ENV.filters["long_date"] = _long_date
    return _ENV
