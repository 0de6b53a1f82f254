"""MCP server exposing template expansion and placeholder checks as tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .config import EngineConfig
from .links import parse_links
from .models import ImageTag, TemplateContext
from .template import expand
from .validator import GalleryValidator, template_is_entirely_placeholder

logger = logging.getLogger("media_links.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="media-links")


@mcp.tool()
def expand_template(
    template: str,
    code: Optional[str] = None,
    studio: Optional[str] = None,
    performer: Optional[str] = None,
    count: int = 50,
) -> List[str]:
    """Generate gallery URLs from a template such as https://host/*/img##.jpg."""
    if template_is_entirely_placeholder(template):
        return []
    ctx = TemplateContext(code=code, studio=studio, performer=performer)
    return expand(template, ctx, count)


@mcp.tool()
async def check_images(urls: List[str]) -> List[Dict[str, Any]]:
    """Classify image URLs as valid, placeholder, or unknown."""
    validator = GalleryValidator(config=EngineConfig.from_env())
    results = await validator.classify_many(urls)
    return [{"url": url, **result.to_dict()} for url, result in zip(urls, results)]


@mcp.tool()
def parse_link_field(
    links: str,
    tags: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Split a comma-separated link field into its template and manual links."""
    parsed = parse_links(links, [ImageTag.from_dict(item) for item in tags or []])
    return parsed.to_dict()


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
