"""
Runtime configuration.

Values come from the environment, with an optional JSON config file as a
fallback for the API key. A missing key is not an error here; it surfaces as
a ConfigError when a batch run starts.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────
#  Gemini Configuration
# ─────────────────────────────────────────────────────────
GEMINI_API_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_MODEL_ID = os.getenv("GEMINI_MODEL_ID", "gemini-2.0-flash-lite")

# General Configuration
SOURCE_LANG   = os.getenv("SOURCE_LANG", "English")
TARGET_LANG   = os.getenv("TARGET_LANG", "Korean")
MAX_RPM       = int(os.getenv("MAX_RPM", "100"))
API_TIMEOUT   = float(os.getenv("API_TIMEOUT", "180"))
MAX_RETRIES   = 3
CHUNK_SIZE    = 50
DEFAULT_MODE  = "stable"

DEFAULT_CONFIG_FILE = Path(__file__).with_name("translator_config.json")


@dataclass(frozen=True)
class ModeConfig:
    chunk_size: int
    concurrency: int
    inter_batch_delay_ms: int

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.inter_batch_delay_ms < 0:
            raise ValueError("inter_batch_delay_ms must not be negative")


MODES: dict[str, ModeConfig] = {
    "fast": ModeConfig(chunk_size=CHUNK_SIZE, concurrency=5, inter_batch_delay_ms=200),
    "stable": ModeConfig(chunk_size=CHUNK_SIZE, concurrency=1, inter_batch_delay_ms=1000),
}


def get_mode(name: str | None) -> ModeConfig:
    """Look up a speed mode, falling back to the default for unknown names"""
    if name and name in MODES:
        return MODES[name]
    if name:
        logger.warning("Unknown speed mode %r, using %r", name, DEFAULT_MODE)
    return MODES[DEFAULT_MODE]


def mode_name(config: ModeConfig) -> str:
    for name, candidate in MODES.items():
        if candidate == config:
            return name
    return "custom"


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


def load_api_key(config_path: Path | None = None) -> str | None:
    """Load the Gemini API key from environment or config file."""
    key = os.getenv("GEMINI_API_KEY")
    if key:
        return key

    if config_path is None:
        env_path = os.getenv("TRANSLATOR_CONFIG_FILE")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_FILE
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read config file %s: %s", config_path, e)
            return None
        if isinstance(data, dict):
            return data.get("GEMINI_API_KEY") or None
    return None


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    model_id: str = GEMINI_MODEL_ID
    source_lang: str = SOURCE_LANG
    target_lang: str = TARGET_LANG
    speed_mode: str = DEFAULT_MODE
    translation_enabled: bool = True
    max_rpm: int = MAX_RPM
    api_timeout: float = API_TIMEOUT
    cache_file: Path | None = None
    export_dir: Path | None = None

    @property
    def mode(self) -> ModeConfig:
        return get_mode(self.speed_mode)


def load_settings(config_path: Path | None = None) -> Settings:
    cache_file = os.getenv("TRANSLATION_CACHE_FILE")
    export_dir = os.getenv("EXPORT_DIR")
    return Settings(
        api_key=load_api_key(config_path),
        model_id=os.getenv("GEMINI_MODEL_ID", GEMINI_MODEL_ID),
        source_lang=os.getenv("SOURCE_LANG", SOURCE_LANG),
        target_lang=os.getenv("TARGET_LANG", TARGET_LANG),
        speed_mode=os.getenv("SPEED_MODE", DEFAULT_MODE),
        translation_enabled=_env_flag("TRANSLATION_ENABLED", True),
        max_rpm=int(os.getenv("MAX_RPM", str(MAX_RPM))),
        api_timeout=float(os.getenv("API_TIMEOUT", str(API_TIMEOUT))),
        cache_file=Path(cache_file) if cache_file else None,
        export_dir=Path(export_dir) if export_dir else None,
    )
