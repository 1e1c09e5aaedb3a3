"""Settings loaded from a YAML config file."""
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from vocab_curator.errors import ConfigError

APP_DIR = Path.home() / ".vocab_curator"
DEFAULT_CONFIG_PATH = APP_DIR / "config.yaml"
CONFIG_ENV_VAR = "VOCAB_CURATOR_CONFIG"
TEMP_PLACEHOLDER = "%TEMP%"


@dataclass
class OpenAISettings:
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    chat_model: str = "gpt-5"
    image_model: str = "gpt-image-1"
    timeout: float = 180.0


@dataclass
class Settings:
    data_file: Path = APP_DIR / "vocab.json"
    backup_directory: Path = APP_DIR / "backups"
    backup_mode: str = "copy"
    max_backup_files: int = 100
    image_directory: str = "vocab-files/images"
    staging_directory: Path = Path(tempfile.gettempdir()) / "vocab_curator" / "staging"
    final_image_pattern: str = "{record_id}{extension}"
    staging_image_pattern: str = "{record_id}-{attempt}{extension}"
    explanation_prompt_file: Optional[Path] = None
    image_prompt_file: Optional[Path] = None
    log_file: Optional[Path] = APP_DIR / "vocab_curator.log"
    log_level: str = "INFO"
    openai: OpenAISettings = field(default_factory=OpenAISettings)

    @property
    def final_image_directory(self) -> Path:
        return Path(self.data_file).parent / self.image_directory


def _resolve(value, base: Path, temp_subdir: str) -> Optional[Path]:
    if value is None:
        return None
    if str(value).strip().upper() == TEMP_PLACEHOLDER:
        return Path(tempfile.gettempdir()) / "vocab_curator" / temp_subdir
    path = Path(os.path.expanduser(str(value)))
    return path if path.is_absolute() else base / path


def _check_keys(raw: dict, allowed, section: str) -> None:
    unknown = sorted(set(raw) - set(allowed))
    if unknown:
        raise ConfigError(f"Unknown {section} key(s): {', '.join(unknown)}")


def settings_from_dict(raw: dict, base_dir: Path) -> Settings:
    """Build Settings from a parsed config mapping; relative paths resolve against base_dir."""
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a mapping.")
    _check_keys(raw, [f.name for f in fields(Settings)], "config")

    openai_raw = raw.get("openai") or {}
    if not isinstance(openai_raw, dict):
        raise ConfigError("'openai' must be a mapping.")
    _check_keys(openai_raw, [f.name for f in fields(OpenAISettings)], "openai")
    openai_settings = OpenAISettings(**openai_raw)
    if not openai_settings.api_key:
        openai_settings.api_key = os.environ.get("OPENAI_API_KEY")
    try:
        openai_settings.timeout = float(openai_settings.timeout)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid openai.timeout: {openai_settings.timeout!r}") from e

    settings = Settings(openai=openai_settings)
    if "data_file" in raw:
        settings.data_file = _resolve(raw["data_file"], base_dir, "data")
    if "backup_directory" in raw:
        settings.backup_directory = _resolve(raw["backup_directory"], base_dir, "backups")
    if "staging_directory" in raw:
        settings.staging_directory = _resolve(raw["staging_directory"], base_dir, "staging")
    for key in ("explanation_prompt_file", "image_prompt_file", "log_file"):
        if key in raw:
            setattr(settings, key, _resolve(raw[key], base_dir, key))
    for key in ("image_directory", "final_image_pattern", "staging_image_pattern", "log_level"):
        if key in raw:
            setattr(settings, key, str(raw[key]))

    backup_mode = str(raw.get("backup_mode", settings.backup_mode)).lower()
    if backup_mode not in ("none", "copy"):
        raise ConfigError(f"Invalid backup_mode: {backup_mode!r} (expected 'none' or 'copy')")
    settings.backup_mode = backup_mode

    try:
        settings.max_backup_files = int(raw.get("max_backup_files", settings.max_backup_files))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid max_backup_files: {raw.get('max_backup_files')!r}") from e
    if settings.max_backup_files < 0:
        raise ConfigError("max_backup_files must not be negative.")
    return settings


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from ``path``, $VOCAB_CURATOR_CONFIG, or the default location.

    A missing config file means all defaults.
    """
    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH).expanduser()
    if not config_path.exists():
        return settings_from_dict({}, config_path.parent)
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e
    return settings_from_dict(raw or {}, config_path.parent)
