"""
工具模块包
提供项目所需的通用工具和功能
"""

# 导出核心工具
from .config_manager import config_manager, LoggingConfig, LoggingModuleConfig
from .exceptions import (
    QuoteSystemError,
    ConfigurationError,
    DatabaseError,
    ValidationError,
    NotFoundError,
    MaterialReferenceError,
    DuplicateKeyError,
    ErrorCodes,
    create_error_response
)
from .logging_manager import (
    LogContext,
    log_execution,
    log_performance,
    logging_manager,
    logger,
    LogConfig,
    initialize_logging,
    ModuleLoggers,
    qm_logger,
    db_logger,
    api_logger,
    pricing_logger,
    config_logger
)
from .date_utils import DateUtils, get_local_time
from .currency import format_currency
from .path_utils import BASE_DIR, CONFIG_DIR, LOG_DIR

# 版本信息
__version__ = "1.0.0"

__all__ = [
    # 配置管理
    "config_manager",
    "LoggingConfig",
    "LoggingModuleConfig",

    # 异常处理
    "QuoteSystemError",
    "ConfigurationError",
    "DatabaseError",
    "ValidationError",
    "NotFoundError",
    "MaterialReferenceError",
    "DuplicateKeyError",
    "ErrorCodes",
    "create_error_response",

    # 日志工具
    "LogContext",
    "log_execution",
    "log_performance",
    "logging_manager",
    "logger",
    "LogConfig",
    "initialize_logging",
    "ModuleLoggers",
    "qm_logger",
    "db_logger",
    "api_logger",
    "pricing_logger",
    "config_logger",

    # 业务工具
    "DateUtils",
    "get_local_time",
    "format_currency",

    # 路径工具
    "BASE_DIR",
    "CONFIG_DIR",
    "LOG_DIR",
]
