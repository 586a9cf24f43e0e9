from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PROFILE_DEV = "dev"
PROFILE_PRODUCTION = "production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    active_profiles_raw: str = Field(default=PROFILE_DEV, alias="ACTIVE_PROFILES")
    http_cache_ttl_days: int = Field(default=1461, gt=0, alias="HTTP_CACHE_TTL_DAYS")
    document_root: str = Field(default="src/main/webapp", alias="DOCUMENT_ROOT")
    static_dist_prefix: str = Field(default="/dist", alias="STATIC_DIST_PREFIX")
    metrics_name_prefix: str = Field(default="http", alias="METRICS_NAME_PREFIX")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8080, alias="PORT")

    @property
    def active_profiles(self) -> frozenset[str]:
        return frozenset(p.strip() for p in self.active_profiles_raw.split(",") if p.strip())

    @property
    def document_root_path(self) -> Path:
        return Path(self.document_root)

    def accepts_profiles(self, *profiles: str) -> bool:
        """True if any of ``profiles`` is active.

        A leading ``!`` negates a name: ``"!production"`` accepts when
        the production profile is not active.
        """

        active = self.active_profiles
        for profile in profiles:
            if profile.startswith("!"):
                if profile[1:] not in active:
                    return True
            elif profile in active:
                return True
        return False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
