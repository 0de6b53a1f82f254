"""Placeholder resolution and sequence expansion for gallery templates.

Token grammar (case-sensitive)::

    *           -> context code, verbatim
    @studio     -> studio name, lowercased
    @firstname  -> first name of the first performer, lowercased
    @lastname   -> last name of the first performer, lowercased
    #, ##, ...  -> index marker; only the first run is expanded

Tokens whose context value is missing stay in the output untouched so callers
can detect an incomplete preview with :func:`has_unresolved_tokens`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import TemplateContext
from .utils import parse_performer_name

TOKEN_PATTERN = re.compile(r"\*|@studio|@firstname|@lastname")
DIGIT_RUN_PATTERN = re.compile(r"#+")

EXAMPLE_CONTEXT = TemplateContext(
    code="abc123",
    studio="Moodyz",
    performer="Yui Hatano (葉月ゆい)",
)


@dataclass
class DigitRun:
    """Location and width of the index marker inside a template."""

    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start


@dataclass
class PlaceholderCounts:
    asterisks: int
    hashes: int
    studios: int
    first_names: int
    last_names: int


def _token_values(ctx: TemplateContext) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if ctx.code:
        values["*"] = ctx.code
    if ctx.studio:
        values["@studio"] = ctx.studio.lower()
    if ctx.performer:
        first, last = parse_performer_name(ctx.performer)
        if first:
            values["@firstname"] = first.lower()
        if last:
            values["@lastname"] = last.lower()
    return values


def resolve(template: str, ctx: TemplateContext) -> str:
    """Substitute context tokens in ``template``; ``#`` runs are left alone."""
    if not template:
        return template
    values = _token_values(ctx)
    return TOKEN_PATTERN.sub(lambda match: values.get(match.group(0), match.group(0)), template)


def has_unresolved_tokens(text: str) -> bool:
    """True when ``text`` still carries token syntax after resolution."""
    return bool(TOKEN_PATTERN.search(text or ""))


def find_digit_run(template: str) -> Optional[DigitRun]:
    """Return the first maximal run of ``#`` characters, if any."""
    match = DIGIT_RUN_PATTERN.search(template or "")
    if not match:
        return None
    return DigitRun(match.start(), match.end())


def is_sequence_template(template: str) -> bool:
    return bool(template and template.strip()) and find_digit_run(template) is not None


def format_index(index: int, width: int) -> str:
    """Render ``index`` for a run of ``width``; a single ``#`` is never padded."""
    if width == 1:
        return str(index)
    return str(index).zfill(width)


def max_index(width: int, max_count: int) -> int:
    if width == 1:
        return max_count
    return min(max_count, 10**width - 1)


def expand(template: str, ctx: TemplateContext, max_count: int) -> List[str]:
    """Generate one URL per index ``1..n`` from a sequence template.

    Returns an empty list when the template has no ``#`` run. No filtering is
    applied here; placeholder detection belongs to the validator.
    """
    run = find_digit_run(template)
    if run is None or max_count <= 0:
        return []
    prefix = resolve(template[: run.start], ctx)
    suffix = resolve(template[run.end :], ctx)
    limit = max_index(run.width, max_count)
    return [prefix + format_index(i, run.width) + suffix for i in range(1, limit + 1)]


def count_placeholders(template: str) -> PlaceholderCounts:
    template = template or ""
    return PlaceholderCounts(
        asterisks=template.count("*"),
        hashes=template.count("#"),
        studios=template.count("@studio"),
        first_names=template.count("@firstname"),
        last_names=template.count("@lastname"),
    )


def describe_digit_run(template: str) -> str:
    run = find_digit_run(template)
    if run is None:
        return "No hashtag pattern found"
    if run.width == 1:
        return "# = sequential numbers (1, 2, 3, ..., 10, 11, etc.)"
    if run.width == 2:
        return "## = 2-digit numbers (01, 02, 03, ..., 99)"
    samples = ", ".join(format_index(i, run.width) for i in range(1, 4))
    return f"{'#' * run.width} = {run.width}-digit numbers ({samples}, ...)"


def explain_placeholders(template: str) -> List[str]:
    """Human-readable notes for every token kind present in ``template``."""
    explanations: List[str] = []
    if "*" in template:
        explanations.append("* = code replacement")
    if "@studio" in template:
        explanations.append("@studio = Studio name (lowercase)")
    if "@firstname" in template:
        explanations.append(
            "@firstname = First name of performer (lowercase, ignores text in parentheses)"
        )
    if "@lastname" in template:
        explanations.append(
            "@lastname = Last name of performer (lowercase, ignores text in parentheses)"
        )
    if "#" in template:
        explanations.append(describe_digit_run(template))
    return explanations


def example_url(template: str) -> str:
    """Resolve ``template`` against sample data and fill in the first index."""
    example = resolve(template, EXAMPLE_CONTEXT)
    run = find_digit_run(example)
    if run is None:
        return example
    return example[: run.start] + format_index(1, run.width) + example[run.end :]
