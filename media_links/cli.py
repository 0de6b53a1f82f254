"""Command-line entry point for the media-link engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Sequence

from .config import EngineConfig
from .links import parse_links
from .models import ImageTag, TemplateContext
from .template import example_url, expand, explain_placeholders, has_unresolved_tokens
from .validator import GalleryValidator, template_is_entirely_placeholder

logger = logging.getLogger("media_links.cli")


def _add_context_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--code", default=None, help="Value substituted for *")
    parser.add_argument("--studio", default=None, help="Value substituted for @studio")
    parser.add_argument(
        "--performer",
        default=None,
        help="Performer name used for @firstname / @lastname",
    )


def _add_verbose_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Expand gallery templates, check images for placeholders, and inspect link fields.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    expand_parser = subparsers.add_parser("expand", help="Generate URLs from a template")
    expand_parser.add_argument("template", help="Template such as https://host/*/img##.jpg")
    _add_context_arguments(expand_parser)
    expand_parser.add_argument(
        "--count",
        type=int,
        default=None,
        help="Maximum number of URLs to generate (default: config max_count)",
    )
    _add_verbose_argument(expand_parser)

    explain_parser = subparsers.add_parser("explain", help="Describe the tokens in a template")
    explain_parser.add_argument("template")
    _add_verbose_argument(explain_parser)

    check_parser = subparsers.add_parser("check", help="Classify image URLs")
    check_parser.add_argument("urls", nargs="+", help="One or more image URLs")
    check_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-image timeout in seconds",
    )
    _add_verbose_argument(check_parser)

    parse_parser = subparsers.add_parser("parse", help="Split a persisted link field")
    parse_parser.add_argument("links", help="Comma-separated link field")
    parse_parser.add_argument(
        "--tags",
        type=Path,
        default=None,
        help="JSON file holding the image tag list",
    )
    _add_verbose_argument(parse_parser)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _context_from_args(args: argparse.Namespace) -> TemplateContext:
    return TemplateContext(code=args.code, studio=args.studio, performer=args.performer)


def _run_expand(args: argparse.Namespace, config: EngineConfig) -> None:
    if template_is_entirely_placeholder(args.template, config):
        logger.warning("Template points at a placeholder image; nothing to expand")
        return
    count = args.count if args.count is not None else config.max_count
    urls = expand(args.template, _context_from_args(args), count)
    if not urls:
        logger.warning("Template has no # run; nothing to expand")
        return
    if has_unresolved_tokens(urls[0]):
        logger.warning("Some tokens could not be resolved; supply the missing context")
    for url in urls:
        sys.stdout.write(url + "\n")
    sys.stdout.flush()


def _run_explain(args: argparse.Namespace) -> None:
    for line in explain_placeholders(args.template):
        sys.stdout.write(line + "\n")
    sys.stdout.write(f"Example: {example_url(args.template)}\n")
    sys.stdout.flush()


def _run_check(args: argparse.Namespace, config: EngineConfig) -> None:
    if args.timeout is not None:
        config.validation_timeout = args.timeout
    validator = GalleryValidator(config=config)
    start = time.perf_counter()
    results = asyncio.run(validator.classify_many(args.urls))
    elapsed = time.perf_counter() - start
    for url, result in zip(args.urls, results):
        payload = {"url": url, **result.to_dict()}
        sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    sys.stdout.flush()
    logger.info("Checked %d URLs in %.2fs", len(results), elapsed)


def _load_tags(path: Path) -> List[ImageTag]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("tag file must contain a JSON list")
    return [ImageTag.from_dict(item) for item in payload]


def _run_parse(args: argparse.Namespace, config: EngineConfig) -> None:
    tags: List[ImageTag] = []
    if args.tags is not None:
        try:
            tags = _load_tags(args.tags)
        except (OSError, ValueError) as exc:
            build_parser().error(f"could not read tags from {args.tags}: {exc}")
    payload = parse_links(args.links, tags, config).to_dict(config)
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
    sys.stdout.flush()


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config = EngineConfig.from_env()
    if args.command == "expand":
        _run_expand(args, config)
    elif args.command == "explain":
        _run_explain(args)
    elif args.command == "check":
        _run_check(args, config)
    else:
        _run_parse(args, config)


if __name__ == "__main__":
    main()
