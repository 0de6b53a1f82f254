"""Data models shared by the resolver, validator, merger and tag ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils import split_names, unique_names


class ContentRating(str, Enum):
    """Content rating attached to a single image."""

    NONE = "none"
    PARTIAL = "N"
    FULL = "NN"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "ContentRating":
        """Parse the persisted form (``"N"``, ``"NN"`` or null); unknown values mean no rating."""
        if value == cls.PARTIAL.value:
            return cls.PARTIAL
        if value == cls.FULL.value:
            return cls.FULL
        return cls.NONE

    def to_wire(self) -> Optional[str]:
        if self is ContentRating.NONE:
            return None
        return self.value


class Verdict(str, Enum):
    VALID = "valid"
    PLACEHOLDER = "placeholder"
    UNKNOWN = "unknown"


@dataclass
class TemplateContext:
    """Context values substituted into template tokens."""

    code: Optional[str] = None
    studio: Optional[str] = None
    performer: Optional[str] = None


@dataclass
class ManualLink:
    """Individually curated image URL with its own annotations."""

    url: str
    performers: List[str] = field(default_factory=list)
    content_rating: ContentRating = ContentRating.NONE

    def __post_init__(self) -> None:
        self.performers = unique_names(self.performers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "performers": list(self.performers),
            "contentRating": self.content_rating.to_wire(),
        }


@dataclass
class ImageTag:
    """Performer and rating annotation for one resolved URL or template position."""

    url: str
    performers: List[str] = field(default_factory=list)
    content_rating: ContentRating = ContentRating.NONE
    image_index: Optional[int] = None

    def __post_init__(self) -> None:
        self.performers = unique_names(self.performers)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "url": self.url,
            "performers": list(self.performers),
            "contentRating": self.content_rating.to_wire(),
        }
        if self.image_index is not None:
            payload["imageIndex"] = self.image_index
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ImageTag":
        performers = payload.get("performers")
        if performers is None:
            # Older records stored the performer list under "actresses".
            performers = payload.get("actresses") or []
        if isinstance(performers, str):
            performers = split_names(performers)
        index = payload.get("imageIndex")
        return cls(
            url=str(payload.get("url") or ""),
            performers=list(performers),
            content_rating=ContentRating.from_wire(payload.get("contentRating")),
            image_index=int(index) if index is not None else None,
        )


@dataclass
class Dimensions:
    width: int
    height: int


@dataclass
class LoadedImage:
    """Result of the decode primitive: pixel size plus whatever the loader kept."""

    width: int
    height: int
    image: Any = None
    content_bytes: Optional[int] = None
    format: Optional[str] = None


@dataclass
class ValidationResult:
    """Verdict for one candidate URL at one point in time."""

    verdict: Verdict
    reason: str
    dimensions: Optional[Dimensions] = None
    approx_size_bytes: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        return self.verdict is Verdict.VALID

    @property
    def is_placeholder(self) -> bool:
        return self.verdict is Verdict.PLACEHOLDER

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"verdict": self.verdict.value, "reason": self.reason}
        if self.dimensions is not None:
            payload["dimensions"] = {
                "width": self.dimensions.width,
                "height": self.dimensions.height,
            }
        if self.approx_size_bytes is not None:
            payload["approxSizeBytes"] = self.approx_size_bytes
        return payload
