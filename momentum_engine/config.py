"""
Configuration management for the momentum engine
"""
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


class ExchangeConfig(BaseModel):
    # spot: /api/v3, вся ликвидность quote_asset
    # futures: /fapi/v1, только PERPETUAL контракты
    market: Literal["spot", "futures"] = Field(default="spot")
    rest_url: str = Field(default="https://api.binance.com")
    ws_url: str = Field(default="wss://stream.binance.com:9443/ws/!miniTicker@arr")
    futures_rest_url: str = Field(default="https://fapi.binance.com")
    futures_ws_url: str = Field(default="wss://fstream.binance.com/ws/!miniTicker@arr")
    quote_asset: str = Field(default="USDT")
    reference_interval: str = Field(default="30m")
    rate_limit_per_second: int = Field(default=10, ge=1, le=100)
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @property
    def active_rest_url(self) -> str:
        return self.futures_rest_url if self.market == "futures" else self.rest_url

    @property
    def active_ws_url(self) -> str:
        return self.futures_ws_url if self.market == "futures" else self.ws_url


class ScannerConfig(BaseModel):
    entry_threshold_percent: float = Field(default=2.0, ge=0.0, le=100.0)
    selection: Literal["smallest", "largest"] = Field(default="smallest")
    rsi_enabled: bool = Field(default=True)
    rsi_period: int = Field(default=14, ge=2, le=50)
    rsi_interval: str = Field(default="15m")
    rsi_overbought: float = Field(default=70, ge=50, le=100)
    rsi_oversold: float = Field(default=30, ge=0, le=50)


class PositionConfig(BaseModel):
    leverage: float = Field(default=10.0, ge=1.0, le=125.0)
    profit_target_percent: float = Field(default=1.0, gt=0.0, le=100.0)
    max_loss_percent: float = Field(default=1.0, gt=0.0, lt=100.0)
    # ниже ~1e-6% шаг теряется в точности float и уровни не двигаются
    ratchet_step_percent: float = Field(default=1.0, ge=1e-6, lt=100.0)
    ratchet_enabled: bool = Field(default=True)
    hard_timeout_seconds: float = Field(default=180.0, gt=0)
    check_interval_seconds: float = Field(default=10.0, gt=0)
    observe_feed_ticks: bool = Field(default=True)
    sizing_mode: Literal["full_portfolio", "fixed_fraction"] = Field(
        default="full_portfolio"
    )
    risk_fraction_percent: float = Field(default=1.0, gt=0.0, le=100.0)
    liquidate_on_halt: bool = Field(default=False)


class CooldownConfig(BaseModel):
    duration_seconds: float = Field(default=300.0, ge=0)


class PortfolioConfig(BaseModel):
    starting_balance: float = Field(default=1000.0, gt=0)
    upper_bound_multiplier: float = Field(default=10.0, gt=1.0)


class EngineSettings(BaseModel):
    reference_refresh_seconds: Optional[float] = Field(default=None, gt=0)
    startup_retry_seconds: float = Field(default=5.0, gt=0)
    log_level: str = Field(default="DEBUG")


class EngineConfig(BaseModel):
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    position: PositionConfig = Field(default_factory=PositionConfig)
    cooldown: CooldownConfig = Field(default_factory=CooldownConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    engine: EngineSettings = Field(default_factory=EngineSettings)

    @classmethod
    def load_from_file(cls, config_path: str = "config/config.yaml") -> "EngineConfig":
        """
        Загрузка конфигурации из YAML файла.

        Читает YAML файл, подставляет переменные окружения
        и валидирует конфигурацию через Pydantic модели.
        Отсутствующие секции заполняются значениями по умолчанию.

        Args:
            config_path: Путь к YAML файлу конфигурации

        Returns:
            EngineConfig: Валидированный объект конфигурации

        Raises:
            FileNotFoundError: Если файл конфигурации не найден
            yaml.YAMLError: При ошибках парсинга YAML
            pydantic.ValidationError: При невалидной конфигурации
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}

        raw_config = cls._substitute_env_vars(raw_config)

        return cls(**raw_config)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Рекурсивная подстановка переменных окружения.

        Строки вида ${VARIABLE_NAME} заменяются значениями из окружения;
        если переменная не задана, строка остаётся как есть.
        """
        if isinstance(obj, dict):
            return {
                key: EngineConfig._substitute_env_vars(value)
                for key, value in obj.items()
            }
        elif isinstance(obj, list):
            return [EngineConfig._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            env_var = obj[2:-1]
            return os.getenv(env_var, obj)
        else:
            return obj


# Global configuration instance
config: Optional[EngineConfig] = None


def load_config(config_path: str = "config/config.yaml") -> EngineConfig:
    """
    Загрузка и инициализация глобальной конфигурации.

    Args:
        config_path: Путь к YAML файлу конфигурации

    Returns:
        EngineConfig: Загруженная и валидированная конфигурация
    """
    global config
    config = EngineConfig.load_from_file(config_path)
    return config


def get_config() -> EngineConfig:
    """
    Получение текущего экземпляра глобальной конфигурации.

    Raises:
        RuntimeError: Если конфигурация не была загружена через load_config()
    """
    if config is None:
        raise RuntimeError("Configuration not loaded. Call load_config() first.")
    return config
