from db.models.settings import Settings
from sqlalchemy.orm import Session
from typing import Optional
import logging
import os

logger = logging.getLogger(__name__)


class SettingsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a setting value, preferring environment variable over database"""
        env_value = os.getenv(key)
        if env_value is not None:
            return env_value

        setting = self.db.query(Settings).filter(Settings.key == key).first()
        if setting and setting.value is not None:
            return setting.value
        return default

    def get_float(self, key: str, default: float) -> float:
        raw = self.get_setting(key)
        if raw is None or raw == "":
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Setting {key}={raw!r} is not a number, using {default}")
            return default

    def set_setting(self, key: str, value: Optional[str], is_secret: bool = False):
        """Set a setting value in database"""
        setting = self.db.query(Settings).filter(Settings.key == key).first()
        if setting:
            setting.value = value
            setting.is_secret = is_secret
        else:
            setting = Settings(key=key, value=value, is_secret=is_secret)
            self.db.add(setting)
        self.db.commit()
