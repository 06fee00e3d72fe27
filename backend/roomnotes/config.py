from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import os


def _default_base_dir() -> Path:
    return Path(os.getenv("RN_HOME") or Path.cwd() / "var")


class Settings(BaseSettings):
    app_name: str = "Room Notes"

    data_dir: Path = Field(default_factory=lambda: _default_base_dir() / "data")
    logs_dir: Path = Field(default_factory=lambda: _default_base_dir() / "logs")

    # Any SQLAlchemy URL; None resolves to a SQLite file under data_dir
    database_url: Optional[str] = None
    admin_user: Optional[str] = None
    admin_password: Optional[str] = None

    api_prefix: str = "/api"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    append_max_attempts: int = 10
    summary_max_attempts: int = 3

    # Summarization backend
    llm_backend: Literal["openai", "llama_cpp"] = "openai"
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.groq.com/openai"
    llm_model: str = "deepseek-r1-distill-llama-70b"
    llm_model_path: Optional[str] = None
    llm_temperature: float = 0.0
    llm_max_tokens: int = 4096
    llm_timeout_seconds: float = 120.0

    model_config = SettingsConfigDict(
        env_prefix="RN_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'rooms.db'}"

    def ensure_dirs(self) -> None:
        for d in [self.data_dir, self.logs_dir]:
            d.mkdir(parents=True, exist_ok=True)
