# ==============================================================================
# Configuration module for generation and engine thresholds
# Модуль конфигурации: параметры генерации и пороги движка
# ==============================================================================
# Settings are loaded from configs/altro.yaml; environment variables override them.
#
# Настройки загружаются из configs/altro.yaml, переменные окружения их переопределяют.
# ==============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# ==============================================================================
# Generation service settings
# Параметры сервиса генерации
# ==============================================================================
class GenerationConfig(BaseModel):
    """
    Where and how the chat request is sent.
    Куда и как отправляется запрос к модели.
    """

    # ollama = /api/chat с NDJSON; openai = OpenAI-совместимый /v1
    backend: Literal["ollama", "openai"] = "ollama"
    base_url: str = "http://localhost:11434"
    endpoint: str = "/api/chat"
    openai_base_url: Optional[str] = None
    model: str = "qwen2.5:14b"

    temperature: float = 0.4
    top_p: float = 0.9
    presence_penalty: float = 0.0
    # Ограничение длины ответа только для зеркального режима
    mirror_num_predict: Optional[int] = 100
    keep_alive: Optional[str] = "10m"

    # Таймаут одного вызова (10 минут); по истечении — один упрощенный повтор
    timeout_seconds: float = Field(600.0, gt=0)
    stream: bool = True

    # Папка для JSONL-диагностики; None = не писать
    log_dir: Optional[str] = None


# ==============================================================================
# Engine thresholds
# Пороги движка
# ==============================================================================
class ThresholdConfig(BaseModel):
    """
    Tunable constants of the linguistic and vector stages.
    Настраиваемые константы лингвистических и векторных стадий.
    """

    fuzzy_auto_apply: float = Field(0.70, ge=0, le=1)
    domain_penetration: float = Field(0.50, ge=0, le=1)
    context_confidence: float = Field(0.70, ge=0, le=1)
    # Шкала 0–100 для внутренних осей
    internal_activation: float = 10.0
    external_activation: float = 0.1
    standby: float = 0.3
    pattern_match: float = 0.7
    # Порог этики (0–100), выше которого добавляется дисклеймер
    ethics_disclaimer: float = 50.0
    scenario_mix_ratio: float = Field(0.5, ge=0, le=1)


class AltroConfig(BaseModel):
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)


# ==============================================================================
# Environment variable overrides
# Переопределения через переменные окружения
# ==============================================================================
class EnvAltroOverrides(BaseSettings):
    """
    Example: ALTRO_GENERATION__MODEL=llama3 or ALTRO_THRESHOLDS__FUZZY_AUTO_APPLY=0.8.
    Пример: ALTRO_GENERATION__MODEL=llama3 или ALTRO_THRESHOLDS__FUZZY_AUTO_APPLY=0.8.
    """

    model_config = SettingsConfigDict(
        env_prefix="ALTRO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    generation: Optional[Dict[str, Any]] = None
    thresholds: Optional[Dict[str, Any]] = None


def _resolve_default_config_path() -> Path:
    """
    Find configs/altro.yaml by searching upward from this file.
    Ищет configs/altro.yaml, поднимаясь вверх от текущего файла.
    """
    start = Path(__file__).resolve()
    for p in [start] + list(start.parents):
        cand = p / "configs" / "altro.yaml"
        if cand.exists():
            return cand
    return Path("configs/altro.yaml")


DEFAULT_CONFIG_PATH = _resolve_default_config_path()


def _merge(section: BaseModel, override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    data = section.model_dump()
    if override:
        data.update({k.lower(): v for k, v in override.items()})
    return data


def load_config(path: Optional[str | Path] = None) -> AltroConfig:
    """
    Load configuration from YAML and apply environment overrides.
    Загрузить конфигурацию из YAML и применить переопределения из окружения.

    Priority / Приоритет (highest to lowest / от высшего к низшему):
        1. Environment variables (ALTRO_*) / Переменные окружения (ALTRO_*)
        2. YAML file settings / Настройки из YAML-файла
        3. Defaults / Значения по умолчанию
    """
    file_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

    if not file_path.exists():
        logger.info("altro.yaml не найден по пути %s, используются значения по умолчанию", file_path)
        data: Any = {}
    else:
        logger.debug("altro.yaml: %s", file_path)
        with file_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    params = data.get("altro", data) if isinstance(data, dict) else {}
    cfg = AltroConfig(**params)

    overrides = EnvAltroOverrides()
    if overrides.generation or overrides.thresholds:
        cfg = AltroConfig(
            generation=GenerationConfig(**_merge(cfg.generation, overrides.generation)),
            thresholds=ThresholdConfig(**_merge(cfg.thresholds, overrides.thresholds)),
        )
    return cfg
