from __future__ import annotations

import functools
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """Central application configuration loaded from env vars or .env."""

    app_name: str = Field(default="FlowForge Requirements Assistant")
    database_path: Path = Field(
        default_factory=lambda: Path.cwd() / "data" / "flowforge.db",
        alias="FLOWFORGE_DATABASE_PATH",
    )
    llm_endpoint: Optional[str] = Field(default=None, alias="LLM_ENDPOINT")
    llm_api_key: Optional[str] = Field(default=None, alias="LLM_API_KEY")
    llm_model: Optional[str] = Field(default=None, alias="LLM_MODEL")
    model_source: str = Field(default="openai", alias="MODEL_SOURCE")
    llm_temperature_chat: float = Field(default=0.4, alias="LLM_TEMPERATURE_CHAT")
    llm_max_tokens: int = Field(default=2048, alias="LLM_MAX_TOKENS")
    chat_history_window: int = Field(default=20, ge=1, alias="FLOWFORGE_CHAT_HISTORY_WINDOW")
    log_level: str = Field(default="INFO")

    # Protocol parsing
    options_min_count: int = Field(default=6, alias="FLOWFORGE_OPTIONS_MIN_COUNT")

    # Canvas footprint used by the layout heuristics
    node_width: float = Field(default=350.0, alias="FLOWFORGE_NODE_WIDTH")
    node_height: float = Field(default=150.0, alias="FLOWFORGE_NODE_HEIGHT")
    node_gap: float = Field(default=200.0, alias="FLOWFORGE_NODE_GAP")

    serialize_project_writes: bool = Field(default=True, alias="FLOWFORGE_SERIALIZE_PROJECT_WRITES")

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "populate_by_name": True,
    }

    @property
    def database_url(self) -> str:
        # SQLAlchemy expects POSIX-style paths; ensure parent directory exists
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{self.database_path.as_posix()}"


@functools.lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
