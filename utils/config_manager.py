"""
统一的配置管理模块
config/ 目录下的 JSON 文件按文件名顺序合并，各配置段以 dataclass 形式类型安全访问
"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Dict, List, Type, TypeVar, Union

from .exceptions import ConfigurationError, ErrorCodes
from .path_utils import CONFIG_DIR

# 获取配置专用日志器
config_logger = logging.getLogger("Config")

S = TypeVar('S')

MERGED_FILENAME = "config.merged.json"


# ============================================================================
# 配置段定义
# ============================================================================

@dataclass
class LoggingModuleConfig:
    """模块日志配置"""
    level: str = "INFO"
    enabled: bool = True


@dataclass
class FileLoggingConfig:
    """文件日志配置"""
    enabled: bool = True
    directory: str = "log"
    filename: str = "sys.log"
    rotation: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConsoleLoggingConfig:
    enabled: bool = True


@dataclass
class LoggingConfig:
    """完整日志配置"""
    level: str = "INFO"
    format: str = "[%(levelname)s][%(asctime)s][%(filename)s:%(lineno)d] - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_config: FileLoggingConfig = field(default_factory=FileLoggingConfig)
    console_config: ConsoleLoggingConfig = field(default_factory=ConsoleLoggingConfig)
    modules: Dict[str, LoggingModuleConfig] = field(default_factory=dict)


@dataclass
class AppConfig:
    env: str = "development"

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@dataclass
class DatabaseConfig:
    """SQLite 数据库配置，相对路径基于项目根目录"""
    db_path: str = "data/quoting.db"
    busy_timeout: float = 30.0


@dataclass
class ApiConfig:
    """API配置；rate_limit_per_minute <= 0 表示不限流"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    reload: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    rate_limit_per_minute: int = 100


@dataclass
class QuoteConfig:
    """报价配置：编号前缀、默认费率和编号冲突重试次数"""
    number_prefix: str = "COT"
    default_labor_rate: float = 25.0
    default_painting_rate: float = 15.0
    number_max_retries: int = 3
    currency: str = "MXN"
    currency_symbol: str = "$"


def build_section(cls: Type[S], data: Optional[Dict[str, Any]]) -> S:
    """按 dataclass 字段从字典构建配置段，未知键忽略，数值按默认值类型转换"""
    values = {}
    for f in fields(cls):
        if f.name not in (data or {}):
            continue
        value = data[f.name]
        default = f.default
        if isinstance(default, bool):
            value = bool(value)
        elif isinstance(default, (int, float)) and value is not None:
            value = type(default)(value)
        values[f.name] = value
    return cls(**values)


def _build_logging_config(data: Dict[str, Any]) -> LoggingConfig:
    config = build_section(LoggingConfig, {
        k: v for k, v in data.items() if k not in ('file_config', 'console_config', 'modules')
    })
    config.file_config = build_section(FileLoggingConfig, data.get('file_config'))
    config.console_config = build_section(ConsoleLoggingConfig, data.get('console_config'))
    config.modules = {
        name: build_section(LoggingModuleConfig, module_data)
        for name, module_data in (data.get('modules') or {}).items()
    }
    return config


# ============================================================================
# 统一配置管理器
# ============================================================================

class UnifiedConfigManager:
    """统一配置管理器"""

    _SECTIONS = {
        'app_config': AppConfig,
        'database_config': DatabaseConfig,
        'api_config': ApiConfig,
        'quote_config': QuoteConfig,
    }

    def __init__(self, config_dir: Union[str, Path] = CONFIG_DIR):
        self._config_dir = Path(config_dir)
        self._config_data: Dict[str, Any] = {}
        self._typed_cache: Dict[str, Any] = {}

        self._load_config()

    def _load_config(self) -> None:
        """加载并合并配置文件，后加载的文件覆盖同名配置段"""
        if not self._config_dir.is_dir():
            raise ConfigurationError(
                f"Configuration path is not a directory: {self._config_dir}",
                ErrorCodes.CONFIG_NOT_FOUND
            )

        config_files = [p for p in sorted(self._config_dir.glob('*.json')) if p.name != MERGED_FILENAME]
        if not config_files:
            raise ConfigurationError(
                f"No configuration files (.json) found in: {self._config_dir}",
                ErrorCodes.CONFIG_NOT_FOUND
            )

        merged_config = {}
        for config_file in config_files:
            try:
                with open(config_file, 'r', encoding='utf-8') as f:
                    merged_config.update(json.load(f))
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    f"Invalid JSON in configuration file {config_file.name}: {e}",
                    ErrorCodes.CONFIG_INVALID_FORMAT
                ) from e
            config_logger.debug(f"Loaded and merged: {config_file.name}")

        self._config_data = merged_config
        self._typed_cache.clear()
        config_logger.info(f"Configuration loaded from {len(config_files)} file(s) in {self._config_dir}")

    def reload_config(self) -> None:
        self._load_config()

    # === 原始访问 ===

    def get(self, key: str, default: Any = None) -> Any:
        return self._config_data.get(key, default)

    def get_nested(self, path: str, default: Any = None) -> Any:
        """获取嵌套配置值，支持点分隔路径"""
        current = self._config_data
        for key in path.split('.'):
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current

    def set_nested(self, path: str, value: Any) -> None:
        """设置嵌套配置值，并使对应配置段的缓存失效"""
        keys = path.split('.')
        current = self._config_data
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value
        self._typed_cache.pop(keys[0], None)

    # === 类型安全访问 ===

    def _section(self, name: str):
        if name not in self._typed_cache:
            cls = self._SECTIONS[name]
            try:
                self._typed_cache[name] = build_section(cls, self.get(name))
            except (TypeError, ValueError) as e:
                config_logger.error(f"Invalid {name}, using defaults: {e}")
                self._typed_cache[name] = cls()
        return self._typed_cache[name]

    def get_app_config(self) -> AppConfig:
        return self._section('app_config')

    def get_database_config(self) -> DatabaseConfig:
        return self._section('database_config')

    def get_api_config(self) -> ApiConfig:
        return self._section('api_config')

    def get_quote_config(self) -> QuoteConfig:
        return self._section('quote_config')

    def get_logging_config(self) -> LoggingConfig:
        """获取日志配置（类型安全）"""
        if 'logging_config' not in self._typed_cache:
            try:
                self._typed_cache['logging_config'] = _build_logging_config(self.get('logging_config') or {})
            except (TypeError, ValueError, AttributeError) as e:
                config_logger.error(f"Invalid logging_config, using defaults: {e}")
                self._typed_cache['logging_config'] = LoggingConfig()
        return self._typed_cache['logging_config']

    def save_config(self, file_path: Optional[str] = None) -> None:
        """保存合并后的配置，默认写入 config.merged.json（加载时跳过）"""
        save_path = Path(file_path) if file_path else self._config_dir / MERGED_FILENAME
        try:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            with open(save_path, 'w', encoding='utf-8') as f:
                json.dump(self._config_data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save configuration: {e}",
                ErrorCodes.CONFIG_INVALID_FORMAT
            ) from e
        config_logger.info(f"Merged configuration saved to: {save_path}")


# 全局实例
config_manager = UnifiedConfigManager()
