"""Merge a gallery template and manual links into one persisted link field.

The link field is a comma-separated list. The first entry containing a ``#``
run is the template; every other entry is a manual link taken verbatim.
URLs that contain a literal comma cannot be represented in this format and
are not supported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .config import DEFAULT_CONFIG, EngineConfig
from .models import ImageTag, ManualLink, TemplateContext
from .template import expand, is_sequence_template

SEPARATOR = ", "


@dataclass
class ParsedLinks:
    template: str = ""
    manual_links: List[ManualLink] = field(default_factory=list)

    def to_dict(self, config: Optional[EngineConfig] = None) -> Dict[str, Any]:
        return {
            "template": self.template,
            "manualLinks": [link.to_dict() for link in self.manual_links],
            "estimatedTotal": estimate_total(self.template, self.manual_links, config),
        }


def is_template_tag(tag: ImageTag, config: Optional[EngineConfig] = None) -> bool:
    """Template tags carry an index inside the reserved template slot range."""
    config = config or DEFAULT_CONFIG
    return tag.image_index is not None and 0 <= tag.image_index < config.reserved_template_slots


def find_manual_tag(
    url: str,
    tags: Sequence[ImageTag],
    config: Optional[EngineConfig] = None,
) -> Optional[ImageTag]:
    for tag in tags:
        if tag.url == url and not is_template_tag(tag, config):
            return tag
    return None


def parse_links(
    serialized: str,
    tags: Sequence[ImageTag] = (),
    config: Optional[EngineConfig] = None,
) -> ParsedLinks:
    """Split a persisted link field back into its template and manual links.

    Never raises: extra template entries are ignored and entries that do not
    look like URLs are kept as manual links rather than dropped.
    """
    parsed = ParsedLinks()
    if not serialized:
        return parsed

    for part in serialized.split(","):
        entry = part.strip()
        if not entry:
            continue
        if "#" in entry:
            if not parsed.template:
                parsed.template = entry
            continue
        tag = find_manual_tag(entry, tags, config)
        if tag is None:
            parsed.manual_links.append(ManualLink(url=entry))
        else:
            parsed.manual_links.append(
                ManualLink(
                    url=entry,
                    performers=list(tag.performers),
                    content_rating=tag.content_rating,
                )
            )
    return parsed


def build_links(template: str, manual_links: Sequence[ManualLink]) -> str:
    """Serialize a template and manual links into the persisted link field."""
    parts: List[str] = []
    if template and template.strip():
        parts.append(template.strip())
    for link in manual_links:
        url = link.url.strip()
        if url:
            parts.append(url)
    return SEPARATOR.join(parts)


def estimate_total(
    template: str,
    manual_links: Sequence[ManualLink],
    config: Optional[EngineConfig] = None,
) -> int:
    """Rough image count for display: a fixed slot allowance per template.

    This is an upper-bound guess, not a count; the real gallery size is only
    known once the generated URLs have been checked.
    """
    config = config or DEFAULT_CONFIG
    template_slots = config.reserved_template_slots if is_sequence_template(template) else 0
    return template_slots + len(manual_links)


def preview_urls(
    template: str,
    ctx: TemplateContext,
    manual_links: Sequence[ManualLink],
    count: Optional[int] = None,
) -> List[str]:
    """First few generated URLs followed by every non-blank manual URL."""
    if count is None:
        count = DEFAULT_CONFIG.preview_count
    urls = expand(template, ctx, count) if is_sequence_template(template) else []
    urls.extend(link.url.strip() for link in manual_links if link.url.strip())
    return urls
