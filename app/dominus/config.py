"""
Purpose: Runtime settings read from the environment, plus logging setup.
The UI may still override the API key from its sidebar field.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .interfaces import KeyValueBackend
from .models import LLMSettings
from .persistence.backends import InMemoryBackend, JsonFileBackend, SQLiteBackend

BACKENDS = ("memory", "json", "sqlite")
DEFAULT_HOME = Path("~/.dominus")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class AppConfig:
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    image_model: str = "gpt-image-1"
    temperature: float = 0.7
    store_backend: str = "json"
    store_path: Optional[Path] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if env is None else env

        backend = (env.get("DOMINUS_STORE_BACKEND") or "json").strip().lower()
        if backend not in BACKENDS:
            raise ValueError(
                f"DOMINUS_STORE_BACKEND must be one of {', '.join(BACKENDS)}, "
                f"got {backend!r}"
            )

        raw_temp = env.get("DOMINUS_TEMPERATURE") or "0.7"
        try:
            temperature = float(raw_temp)
        except ValueError as e:
            raise ValueError(f"DOMINUS_TEMPERATURE is not a number: {raw_temp!r}") from e

        path = env.get("DOMINUS_STORE_PATH")
        return cls(
            api_key=env.get("OPENAI_API_KEY") or None,
            model=env.get("OPENAI_MODEL") or "gpt-4o-mini",
            image_model=env.get("OPENAI_IMAGE_MODEL") or "gpt-image-1",
            temperature=temperature,
            store_backend=backend,
            store_path=Path(path).expanduser() if path else None,
            log_level=(env.get("DOMINUS_LOG_LEVEL") or "INFO").upper(),
        )

    def resolved_store_path(self) -> Path:
        if self.store_path is not None:
            return self.store_path
        suffix = ".db" if self.store_backend == "sqlite" else ".json"
        return (DEFAULT_HOME / f"sessions{suffix}").expanduser()

    def llm_settings(self) -> LLMSettings:
        return LLMSettings(model=self.model, temperature=self.temperature)


def build_backend(config: AppConfig) -> KeyValueBackend:
    if config.store_backend == "memory":
        return InMemoryBackend()
    if config.store_backend == "sqlite":
        return SQLiteBackend(config.resolved_store_path())
    return JsonFileBackend(config.resolved_store_path())


def configure_logging(level: str = "INFO") -> None:
    """Install a basic root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level)
