from typing import Annotated, Dict, List, Literal
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_title: str = "EduConnect API"
    app_version: str = "1.0.0"

    # Database
    database_url: str = "sqlite+aiosqlite:///./educonnect.db"
    database_echo: bool = False

    # Tokens
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # CORS, comma separated in the environment
    cors_origins: Annotated[List[str], NoDecode] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Grading rules
    default_grade_weights: Dict[str, float] = {"examenes": 40, "tareas": 30, "proyectos": 30}
    low_participation_threshold: float = 5.0
    escalation_threshold: int = 3
    flagged_behavior_phrase: str = "mal portado"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v


settings = Settings()
