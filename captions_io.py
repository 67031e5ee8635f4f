"""Reading and writing caption lists as JSON or SRT."""

import json
import logging
from pathlib import Path

import pysrt

from captions import CaptionItem, items_from_dicts, items_to_dicts

logger = logging.getLogger(__name__)

LANG_CODES = {
    "korean": "kr",
    "english": "en",
    "spanish": "es",
    "japanese": "ja",
    "chinese": "zh",
    "french": "fr",
    "german": "de",
}


def lang_code(language: str) -> str:
    return LANG_CODES.get(language.strip().lower(), language.strip().lower()[:2] or "xx")


def _ordinal_to_seconds(t: pysrt.SubRipTime) -> float:
    return t.ordinal / 1000.0


def load_captions(path: Path) -> list[CaptionItem]:
    """Load captions from a .json array or an .srt file"""
    path = Path(path)
    if path.suffix.lower() == ".srt":
        subs = pysrt.open(str(path), encoding="utf-8")
        return [
            CaptionItem(_ordinal_to_seconds(s.start), _ordinal_to_seconds(s.end), s.text)
            for s in subs
        ]

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(
            f"{path.name}: expected a JSON array of captions "
            '(e.g. [{"startInSeconds": 0, "text": "..."}])'
        )
    try:
        return items_from_dicts(data)
    except (TypeError, AttributeError, ValueError) as e:
        raise ValueError(f"{path.name}: invalid caption row: {e}") from e


def captions_to_srt(items: list[CaptionItem]) -> pysrt.SubRipFile:
    subs = pysrt.SubRipFile()
    for i, item in enumerate(items, start=1):
        subs.append(pysrt.SubRipItem(
            index=i,
            start=pysrt.SubRipTime.from_ordinal(int(round(item.start_in_seconds * 1000))),
            end=pysrt.SubRipTime.from_ordinal(int(round(item.end_in_seconds * 1000))),
            text=item.text,
        ))
    return subs


def save_captions(items: list[CaptionItem], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".srt":
        captions_to_srt(items).save(str(path), encoding="utf-8")
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(items_to_dicts(items), f, ensure_ascii=False, indent=2)
    return path


class JsonExporter:
    """Writes a finished translation as lecture_<fingerprint>_<lang>.json"""

    def __init__(self, directory: Path, language: str):
        self.directory = Path(directory)
        self.code = lang_code(language)

    def filename(self, fp: str) -> str:
        return f"lecture_{fp}_{self.code}.json"

    def __call__(self, fp: str, items: list[CaptionItem]) -> Path:
        path = save_captions(items, self.directory / self.filename(fp))
        logger.info("Exported translation to %s", path)
        return path
