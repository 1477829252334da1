from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='MOUNTVFS_', env_file='.env', env_file_encoding='utf-8')

    app_name: str = 'mountvfs'
    vfs_root: str = '/srv/vfs'
    log_level: str = 'info'
    log_format: str = '%(asctime)s %(levelname)s %(name)s: %(message)s'
    strict_confinement: bool = False
    new_file_mode: int = Field(default=0o644, ge=0, le=0o7777)
    new_dir_mode: int = Field(default=0o755, ge=0, le=0o7777)


settings = Settings()
