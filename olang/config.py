# olang/config.py
from functools import lru_cache
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "O-Lang"

    # Capability policy
    math_resolver_name: str = Field(default="builtInMathResolver")
    disallowed_log_path: Optional[str] = Field(default=None)

    # Legacy evolve loop
    default_max_generations: int = Field(default=1)
    evolve_output_variable: str = Field(default="improved_summary")

    # Persistence sinks
    database_url: str = Field(default="sqlite:///./olang.db")
    database_scheme: str = Field(default="db")
    sink_base_dir: Optional[str] = Field(default=None)

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="OLANG_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
