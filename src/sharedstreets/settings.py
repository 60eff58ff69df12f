from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    tile_source: str = 'osm/planet-181224'
    tile_hierarchy: int = 6
    tile_zoom: int = 12
    tile_base_url: str = 'https://tiles.sharedstreets.io/'
    cache_dir: Path = Path.home() / '.shst' / 'cache' / 'tiles'

    # Fetching
    max_workers: int = 8
    max_retries: int = 3
    retry_delay_s: float = 0.5
    request_timeout: float = 10.0

    model_config = SettingsConfigDict(env_prefix="SHST_", env_file=".env", extra="ignore")

settings = Settings()
