"""Persistent settings: chat connection parameters and the download path."""

import json
import logging
import shutil
from pathlib import Path

from pydantic import BaseModel, Field

from chat.models import SessionConfig
from config import CONFIG_PATH, DEFAULT_DOWNLOAD_DIR

logger = logging.getLogger(__name__)

SETTINGS_VERSION = 1


class GeneralSettings(BaseModel):
    download_path: str = str(DEFAULT_DOWNLOAD_DIR)


class Settings(BaseModel):
    """Shape of the settings file on disk."""
    version: int = SETTINGS_VERSION
    irc: SessionConfig = Field(default_factory=SessionConfig)
    general: GeneralSettings = Field(default_factory=GeneralSettings)


class SettingsStore:
    """Loads, validates and saves the JSON settings file."""

    def __init__(self, path: str | Path = CONFIG_PATH):
        self._path = Path(path)
        self._settings = Settings()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            logger.info(f"No settings file at {self._path}, writing defaults")
            self._save()
            return

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            self._settings = Settings.model_validate(data)
            logger.info(f"Loaded settings from {self._path}")
        except (OSError, ValueError) as e:
            # pydantic's ValidationError is a ValueError
            backup = self._path.with_name(self._path.name + ".backup")
            logger.error(f"Settings file is corrupt ({e}); backing up to {backup} and resetting")
            try:
                shutil.copyfile(self._path, backup)
            except OSError as copy_error:
                logger.error(f"Failed to back up settings: {copy_error}")
            self._settings = Settings()
            self._save()

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(self._settings.model_dump(mode="json"), indent=2), encoding="utf-8"
            )
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")

    # --- Accessors ---

    def irc_config(self) -> SessionConfig:
        return self._settings.irc

    def update_irc_config(self, **changes) -> SessionConfig:
        """Merge changes into the chat settings. Raises ValidationError on bad values."""
        merged = {**self._settings.irc.model_dump(), **changes}
        config = SessionConfig.model_validate(merged)
        self._settings = self._settings.model_copy(update={"irc": config})
        self._save()
        logger.info("IRC settings updated")
        return config

    def download_path(self) -> Path:
        return Path(self._settings.general.download_path)

    def update_download_path(self, path: str | Path) -> Path:
        general = GeneralSettings(download_path=str(path))
        self._settings = self._settings.model_copy(update={"general": general})
        self._save()
        logger.info(f"Download path set to {path}")
        return Path(path)

    def reset(self) -> Settings:
        """Restore defaults (including a fresh nickname) and save them."""
        self._settings = Settings()
        self._save()
        logger.info("Settings reset to defaults")
        return self._settings
