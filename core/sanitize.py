from typing import Optional

from markupsafe import Markup


def strip_tags(value: str) -> str:
    """Remove HTML markup and collapse whitespace."""
    return Markup(value).striptags()


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return strip_tags(value.strip()).strip()
