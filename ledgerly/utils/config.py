"""Environment configuration, read once per process."""

import os
import tempfile
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = 'claude-3-haiku-20240307'
DEFAULT_KEY_PREFIX = 'finance_app_'


@dataclass(frozen=True)
class Config:
    """Process configuration."""
    anthropic_api_key: str
    ai_model: str
    db_path: str
    data_bucket: str
    key_prefix: str

    @property
    def ai_enabled(self) -> bool:
        return bool(self.anthropic_api_key)


_config: Optional[Config] = None


def load_config() -> Config:
    """Build a Config from environment variables."""
    return Config(
        anthropic_api_key=os.environ.get('ANTHROPIC_API_KEY', ''),
        ai_model=os.environ.get('LEDGERLY_AI_MODEL', DEFAULT_MODEL),
        db_path=os.environ.get('LEDGERLY_DB_PATH', os.path.join(tempfile.gettempdir(), 'ledgerly.db')),
        data_bucket=os.environ.get('DATA_BUCKET', ''),
        key_prefix=os.environ.get('LEDGERLY_KEY_PREFIX', DEFAULT_KEY_PREFIX)
    )


def get_config() -> Config:
    """Get the cached process configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
