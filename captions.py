"""
Caption data types and content fingerprinting.

A caption list is an ordered, temporal sequence. Translation only ever
replaces ``text``; timestamps travel through the pipeline untouched.
"""

import hashlib
from dataclasses import dataclass, field, replace

FINGERPRINT_LENGTH = 16


@dataclass(frozen=True)
class CaptionItem:
    start_in_seconds: float
    end_in_seconds: float
    text: str

    def with_text(self, text: str) -> "CaptionItem":
        return replace(self, text=text)

    def to_dict(self) -> dict:
        """Serialise using the exported JSON field names"""
        return {
            "startInSeconds": self.start_in_seconds,
            "endInSeconds": self.end_in_seconds,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CaptionItem":
        return cls(
            start_in_seconds=float(data.get("startInSeconds", 0.0)),
            end_in_seconds=float(data.get("endInSeconds", 0.0)),
            text=data.get("text", ""),
        )


@dataclass
class Chunk:
    """Contiguous slice of a caption list; origin_index is the offset of its first item"""
    origin_index: int
    items: list[CaptionItem] = field(default_factory=list)


@dataclass
class ChunkResult:
    origin_index: int
    items: list[CaptionItem] = field(default_factory=list)
    failed: bool = False


def fingerprint(items: list[CaptionItem]) -> str:
    """Stable cache key from the concatenated caption text (timestamps ignored)"""
    joined = "".join(item.text for item in items)
    digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def format_timestamp(seconds: float) -> str:
    """HH:MM:SS label used as the per-line id in batch prompts"""
    total = int(seconds)
    hh, rem = divmod(total, 3600)
    mm, ss = divmod(rem, 60)
    return f"{hh % 24:02d}:{mm:02d}:{ss:02d}"


def items_from_dicts(rows: list[dict]) -> list[CaptionItem]:
    return [CaptionItem.from_dict(row) for row in rows]


def items_to_dicts(items: list[CaptionItem]) -> list[dict]:
    return [item.to_dict() for item in items]
