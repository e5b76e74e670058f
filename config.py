import os
from functools import lru_cache

from pydantic import BaseModel, field_validator

ENV_PREFIX = "SPLITTER_"


class Settings(BaseModel):
    app_title: str = "Group expense splitter"
    log_level: str = "INFO"
    currency_symbol: str = "$"
    pdf_font: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
    pdf_font_bold: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    host: str = "0.0.0.0"
    port: int = 5000

    @field_validator('log_level')
    @classmethod
    def known_level(cls, v):
        v = v.upper()
        if v not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'Unknown log level: {v}')
        return v


def load_settings(environ=None) -> Settings:
    """Build Settings from SPLITTER_* environment variables."""
    environ = os.environ if environ is None else environ
    values = {}
    for name in Settings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            values[name] = environ[key]
    return Settings(**values)


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
