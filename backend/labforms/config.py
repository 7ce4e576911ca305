"""Application settings and validation."""

import logging
import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent
DEFAULT_DB_URL = f"sqlite:///{BASE / 'labforms.db'}"


class Settings:
    ENV: str
    DATABASE_URL: str
    SQL_ECHO: bool
    LOG_LEVEL: str
    DEFAULT_PAGE_SIZE: int
    MAX_PAGE_SIZE: int
    ALLOW_SQLITE: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DB_URL)
        self.SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
        self.MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "200"))
        self.ALLOW_SQLITE = os.getenv("ALLOW_SQLITE", "false").lower() == "true"
        self._validate()

    def _validate(self):
        if self.DEFAULT_PAGE_SIZE <= 0 or self.MAX_PAGE_SIZE <= 0:
            raise RuntimeError("page sizes must be positive")
        if self.DEFAULT_PAGE_SIZE > self.MAX_PAGE_SIZE:
            raise RuntimeError("DEFAULT_PAGE_SIZE must not exceed MAX_PAGE_SIZE")
        if self.ENV != "dev" and not self.ALLOW_SQLITE and self.DATABASE_URL == DEFAULT_DB_URL:
            raise RuntimeError("DATABASE_URL must be set to a non-default value in non-dev environments")

    def clamp_limit(self, limit):
        """Return `limit` bounded to 1..MAX_PAGE_SIZE, or the default when None."""
        if limit is None:
            return self.DEFAULT_PAGE_SIZE
        return max(1, min(int(limit), self.MAX_PAGE_SIZE))


settings = Settings()


def configure_logging(level: str = None):
    """Install a basic root handler unless logging is already configured."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level or settings.LOG_LEVEL)
