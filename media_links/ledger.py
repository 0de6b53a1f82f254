"""Keep per-image tags consistent with edits to the template and manual links.

Every function returns new lists and leaves its arguments untouched. Lookups
that miss return ``None``; a missing tag simply means "untagged".
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from .config import DEFAULT_CONFIG, EngineConfig
from .links import find_manual_tag, is_template_tag
from .models import ContentRating, ImageTag, ManualLink
from .template import find_digit_run, is_sequence_template, max_index
from .utils import split_names, unique_names

logger = logging.getLogger("media_links")

LinksAndTags = Tuple[List[ManualLink], List[ImageTag]]


def manual_slot(position: int, config: Optional[EngineConfig] = None) -> int:
    """Legacy slot number of the ``position``-th manual link."""
    config = config or DEFAULT_CONFIG
    return config.reserved_template_slots + position


def tag_for_url(
    tags: Sequence[ImageTag],
    url: str,
    config: Optional[EngineConfig] = None,
) -> Optional[ImageTag]:
    return find_manual_tag(url, tags, config)


def tag_for_index(
    tags: Sequence[ImageTag],
    index: int,
    config: Optional[EngineConfig] = None,
) -> Optional[ImageTag]:
    for tag in tags:
        if tag.image_index == index and is_template_tag(tag, config):
            return tag
    return None


def on_template_change(
    template: str,
    tags: Sequence[ImageTag],
    config: Optional[EngineConfig] = None,
) -> List[ImageTag]:
    """Drop template tags once the template is cleared or loses its ``#`` run."""
    if is_sequence_template(template):
        return list(tags)
    kept = [tag for tag in tags if not is_template_tag(tag, config)]
    if len(kept) != len(tags):
        logger.debug("Dropped %d template tags", len(tags) - len(kept))
    return kept


def assign_template_performers(
    tags: Sequence[ImageTag],
    performers: Union[str, Iterable[str]],
    config: Optional[EngineConfig] = None,
) -> List[ImageTag]:
    """Set the same performers on every template tag, keeping each rating.

    ``performers`` may also be a comma-separated string such as ``"Rei, Aoi"``.
    """
    if isinstance(performers, str):
        names = split_names(performers)
    else:
        names = unique_names(performers)
    return [
        replace(tag, performers=list(names)) if is_template_tag(tag, config) else tag
        for tag in tags
    ]


def template_performers(
    template: str,
    tags: Sequence[ImageTag],
    config: Optional[EngineConfig] = None,
) -> List[str]:
    """Performers shown on the first template image, used as the template default."""
    if not is_sequence_template(template):
        return []
    first = tag_for_index(tags, 0, config)
    return list(first.performers) if first else []


def set_template_image_tag(
    tags: Sequence[ImageTag],
    index: int,
    url: str,
    performers: Optional[Iterable[str]] = None,
    content_rating: Optional[ContentRating] = None,
    config: Optional[EngineConfig] = None,
) -> List[ImageTag]:
    """Create or update the tag of one template position."""
    config = config or DEFAULT_CONFIG
    if not 0 <= index < config.reserved_template_slots:
        raise ValueError(
            f"Template index {index} outside reserved range "
            f"[0, {config.reserved_template_slots})"
        )
    result = list(tags)
    for position, tag in enumerate(result):
        if tag.image_index == index:
            changes = {"url": url}
            if performers is not None:
                changes["performers"] = list(performers)
            if content_rating is not None:
                changes["content_rating"] = content_rating
            result[position] = replace(tag, **changes)
            return result
    result.append(
        ImageTag(
            url=url,
            performers=list(performers or []),
            content_rating=content_rating or ContentRating.NONE,
            image_index=index,
        )
    )
    return result


def add_manual_link(
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    url: str,
    config: Optional[EngineConfig] = None,
) -> LinksAndTags:
    url = (url or "").strip()
    new_links = list(links)
    new_tags = list(tags)
    if not url:
        return new_links, new_tags
    new_links.append(ManualLink(url=url))
    if find_manual_tag(url, new_tags, config) is None:
        new_tags.append(ImageTag(url=url))
    return new_links, new_tags


def add_dropped_urls(
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    urls: Iterable[str],
    config: Optional[EngineConfig] = None,
) -> LinksAndTags:
    """Add a batch of dropped URLs, skipping any already in the manual list."""
    new_links, new_tags = list(links), list(tags)
    for url in urls:
        url = (url or "").strip()
        if not url or any(link.url == url for link in new_links):
            continue
        new_links, new_tags = add_manual_link(new_links, new_tags, url, config)
    return new_links, new_tags


def remove_manual_link(
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    index: int,
    config: Optional[EngineConfig] = None,
) -> LinksAndTags:
    if not 0 <= index < len(links):
        return list(links), list(tags)
    removed = links[index]
    new_links = [link for position, link in enumerate(links) if position != index]
    if any(link.url == removed.url for link in new_links):
        return new_links, list(tags)
    new_tags = [
        tag for tag in tags if is_template_tag(tag, config) or tag.url != removed.url
    ]
    return new_links, new_tags


def update_manual_link(
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    index: int,
    performers: Optional[Iterable[str]] = None,
    content_rating: Optional[ContentRating] = None,
    config: Optional[EngineConfig] = None,
) -> LinksAndTags:
    """Edit the performers and/or rating of one manual link and its tag."""
    if not 0 <= index < len(links):
        return list(links), list(tags)
    link = links[index]
    changes = {}
    if performers is not None:
        changes["performers"] = list(performers)
    if content_rating is not None:
        changes["content_rating"] = content_rating
    updated = replace(link, **changes)

    new_links = list(links)
    new_links[index] = updated
    new_tags = list(tags)
    for position, tag in enumerate(new_tags):
        if tag.url == link.url and not is_template_tag(tag, config):
            new_tags[position] = replace(
                tag,
                performers=list(updated.performers),
                content_rating=updated.content_rating,
            )
            break
    else:
        new_tags.append(
            ImageTag(
                url=updated.url,
                performers=list(updated.performers),
                content_rating=updated.content_rating,
            )
        )
    return new_links, new_tags


def toggle_manual_rating(
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    index: int,
    rating: ContentRating,
    config: Optional[EngineConfig] = None,
) -> LinksAndTags:
    """Apply ``rating``, or clear it if the link already has that rating."""
    if not 0 <= index < len(links):
        return list(links), list(tags)
    current = links[index].content_rating
    new_rating = ContentRating.NONE if current is rating else rating
    return update_manual_link(links, tags, index, content_rating=new_rating, config=config)


def assign_performer(
    tags: Sequence[ImageTag],
    urls: Iterable[str],
    performer: str,
    index_of: Optional[Callable[[str], Optional[int]]] = None,
) -> List[ImageTag]:
    """Add ``performer`` to the tag of each URL, creating missing tags.

    ``index_of`` maps a URL to its template position for new tags; URLs it
    does not know become manual tags.
    """
    performer = performer.strip()
    result = list(tags)
    if not performer:
        return result
    for url in urls:
        for position, tag in enumerate(result):
            if tag.url == url:
                if performer not in tag.performers:
                    result[position] = replace(tag, performers=tag.performers + [performer])
                break
        else:
            index = index_of(url) if index_of else None
            result.append(ImageTag(url=url, performers=[performer], image_index=index))
    return result


def unassign_performer(
    tags: Sequence[ImageTag],
    urls: Iterable[str],
    performer: str,
) -> List[ImageTag]:
    targets = set(urls)
    return [
        replace(tag, performers=[name for name in tag.performers if name != performer])
        if tag.url in targets
        else tag
        for tag in tags
    ]


def sync_tags(
    template: str,
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    config: Optional[EngineConfig] = None,
) -> List[ImageTag]:
    """Canonical tag list for saving: template tags, then one tag per manual link."""
    template_tags: List[ImageTag] = []
    if is_sequence_template(template):
        template_tags = sorted(
            (tag for tag in tags if is_template_tag(tag, config)),
            key=lambda tag: tag.image_index,
        )
    manual_tags = [
        ImageTag(
            url=link.url.strip(),
            performers=list(link.performers),
            content_rating=link.content_rating,
        )
        for link in links
        if link.url.strip()
    ]
    return template_tags + manual_tags


def prune_orphans(
    template: str,
    links: Sequence[ManualLink],
    tags: Sequence[ImageTag],
    max_count: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> List[ImageTag]:
    """Drop tags that no longer point at anything.

    Manual tags whose URL left the manual list go, as do template tags when
    the template is gone or their index falls outside the generated range.
    """
    config = config or DEFAULT_CONFIG
    run = find_digit_run(template) if is_sequence_template(template) else None
    limit = -1
    if run is not None:
        limit = max_index(run.width, max_count if max_count is not None else config.max_count)
    manual_urls = {link.url.strip() for link in links}

    kept: List[ImageTag] = []
    for tag in tags:
        if is_template_tag(tag, config):
            # Template tags are 0-based; generated URLs are numbered from 1.
            if tag.image_index < limit:
                kept.append(tag)
        elif tag.url in manual_urls:
            kept.append(tag)
    return kept
