"""
统一的日志管理模块
根日志器的控制台/文件输出、按模块的日志级别，以及业务操作的上下文日志与计数
"""

import asyncio
import functools
import logging
import sys
import threading
import time
import traceback
from collections import defaultdict
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Dict, Any, Callable, List

from .exceptions import QuoteSystemError, ErrorCodes
from .config_manager import config_manager
from .path_utils import BASE_DIR, LOG_DIR

logger = logging.getLogger("LoggingManager")


@dataclass
class LogConfig:
    """日志输出配置"""
    level: str = "INFO"
    format: str = "[%(levelname)s][%(asctime)s][%(filename)s:%(lineno)d] - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_max_bytes: int = 10 * 1024 * 1024
    file_backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = True
    log_directory: Optional[str] = None
    log_filename: str = "sys.log"
    rotation_type: str = "size"  # size | time

    @property
    def log_path(self) -> Path:
        return Path(self.log_directory or LOG_DIR) / self.log_filename


class LoggingManager:
    """日志管理器（进程内唯一）"""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._config = LogConfig()
                cls._instance._metrics = defaultdict(int)
        return cls._instance

    @property
    def config(self) -> LogConfig:
        return self._config

    def configure(self, config: LogConfig = None) -> None:
        """按配置重建根日志器的处理器"""
        if config is not None:
            self._config = config

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, self._config.level.upper(), logging.INFO))

        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)

        formatter = logging.Formatter(self._config.format, datefmt=self._config.date_format)
        for handler in self._build_handlers():
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)

    def _build_handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = []

        if self._config.enable_console:
            handlers.append(logging.StreamHandler(sys.stdout))

        if self._config.enable_file:
            log_path = self._config.log_path
            log_path.parent.mkdir(parents=True, exist_ok=True)
            if self._config.rotation_type == "time":
                handlers.append(TimedRotatingFileHandler(
                    filename=log_path, when="midnight", interval=1,
                    backupCount=self._config.file_backup_count, encoding="utf-8"
                ))
            else:
                handlers.append(RotatingFileHandler(
                    filename=log_path, maxBytes=self._config.file_max_bytes,
                    backupCount=self._config.file_backup_count, encoding="utf-8"
                ))

        return handlers

    def configure_from_config_file(self):
        """从 config/ 中的 logging_config 配置日志"""
        try:
            logging_config = config_manager.get_logging_config()
            file_config = logging_config.file_config
            rotation = file_config.rotation or {}

            log_directory = Path(file_config.directory)
            if not log_directory.is_absolute():
                log_directory = BASE_DIR / log_directory

            self.configure(LogConfig(
                level=logging_config.level,
                format=logging_config.format,
                date_format=logging_config.date_format,
                file_max_bytes=int(rotation.get('max_bytes_mb', 10) * 1024 * 1024),
                file_backup_count=rotation.get('backup_count', 5),
                enable_console=logging_config.console_config.enabled,
                enable_file=file_config.enabled,
                log_directory=str(log_directory),
                log_filename=file_config.filename,
                rotation_type=rotation.get('type', 'size'),
            ))

            # 禁用的模块只保留 CRITICAL
            for module_name, module_config in logging_config.modules.items():
                level = module_config.level.upper() if module_config.enabled else "CRITICAL"
                self.get_logger(module_name).setLevel(getattr(logging, level, logging.INFO))

            return logging_config

        except (OSError, ValueError, TypeError) as e:
            raise QuoteSystemError(
                f"Failed to configure logging from config file: {e}",
                ErrorCodes.CONFIG_INVALID_FORMAT
            ) from e

    def get_logger(self, name: str = None) -> logging.Logger:
        return logging.getLogger(name or "quotingsystem")

    def record(self, key: str) -> None:
        self._metrics[key] += 1

    def get_metrics(self) -> Dict[str, int]:
        """按 '<上下文>_<started|completed|failed>' 统计的操作次数"""
        return dict(self._metrics)

    def reset_metrics(self) -> None:
        self._metrics.clear()


class LogContext:
    """业务操作日志上下文：记录开始、耗时、结果并计数

    上下文名称形如 ``QuoteManager.update_quote.Quote:7``。
    4xx 类业务异常记为 warning，其余异常记为 error。
    """

    def __init__(self, module: str, operation: str = None,
                 quote_id: int = None, material_id: int = None,
                 extra_context: Dict[str, Any] = None):
        self.module = module
        self.logger = logging_manager.get_logger(module)
        self.start_time = None

        parts = [module]
        if operation:
            parts.append(operation)
        if quote_id is not None:
            parts.append(f"Quote:{quote_id}")
        if material_id is not None:
            parts.append(f"Material:{material_id}")
        self.context = ".".join(parts)
        self.extra_context = {k: v for k, v in (extra_context or {}).items() if not k.startswith('_')}

    def _describe(self) -> str:
        if not self.extra_context:
            return self.context
        details = ", ".join(f"{k}={v}" for k, v in self.extra_context.items())
        return f"{self.context} ({details})"

    def __enter__(self):
        self.start_time = time.time()
        self.logger.debug(f"[{self._describe()}] Starting operation")
        logging_manager.record(f"{self.context}_started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time

        if exc_type is None:
            self.logger.info(f"[{self._describe()}] Operation completed in {duration:.3f}s")
            logging_manager.record(f"{self.context}_completed")
            return

        if isinstance(exc_val, QuoteSystemError) and exc_val.status_code < 500:
            self.logger.warning(f"[{self._describe()}] Operation rejected in {duration:.3f}s: {exc_val}")
        else:
            self.logger.error(f"[{self._describe()}] Operation failed in {duration:.3f}s: {exc_val}")
            self.logger.debug(f"[{self.context}] Traceback: {''.join(traceback.format_tb(exc_tb))}")
        logging_manager.record(f"{self.context}_failed")


def log_execution(module: str, operation: str = None):
    """以 LogContext 包裹函数调用；quote_id / material_id 关键字参数进入上下文"""
    def decorator(func: Callable) -> Callable:
        def context_for(kwargs):
            ids = {k: kwargs[k] for k in ('quote_id', 'material_id') if k in kwargs}
            return LogContext(module, operation or func.__name__, **ids)

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with context_for(kwargs):
                    return await func(*args, **kwargs)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with context_for(kwargs):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


def log_performance(module: str, threshold: float = 1.0):
    """记录异步调用耗时，超过阈值（秒）时告警"""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                duration = time.time() - start_time
                perf_logger = logging_manager.get_logger(module)
                if duration > threshold:
                    perf_logger.warning(f"[{module}] Slow operation: {func.__name__} took {duration:.2f}s")
                else:
                    perf_logger.debug(f"[{module}] {func.__name__} completed in {duration:.3f}s")

        return async_wrapper

    return decorator


# 全局日志管理器实例
logging_manager = LoggingManager()

logger = logging_manager.get_logger()


class ModuleLoggers:
    """模块专用日志器"""

    QuoteManager = logging_manager.get_logger("QuoteManager")
    Database = logging_manager.get_logger("Database")
    API = logging_manager.get_logger("API")
    Pricing = logging_manager.get_logger("Pricing")
    Config = logging_manager.get_logger("Config")


qm_logger = ModuleLoggers.QuoteManager
db_logger = ModuleLoggers.Database
api_logger = ModuleLoggers.API
pricing_logger = ModuleLoggers.Pricing
config_logger = ModuleLoggers.Config


def initialize_logging(use_config_file: bool = True) -> bool:
    """初始化日志系统；配置文件无效时回退到默认配置"""
    if not use_config_file:
        logging_manager.configure()
        logger.info("Logging system initialized with default config")
        return True

    try:
        logging_config = logging_manager.configure_from_config_file()
    except QuoteSystemError as e:
        print(f"Failed to initialize logging from config file: {e}")
        print("Falling back to default configuration...")
        logging_manager.configure(LogConfig())
        logger.info("Logging system initialized with fallback config")
        return True

    logger.info(
        f"Logging system initialized from config file "
        f"(level={logging_config.level}, file={logging_config.file_config.enabled})"
    )
    return True
