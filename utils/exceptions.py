"""
统一异常定义模块
提供项目特定的异常类和错误处理机制
"""

from typing import Optional, Dict, Any


class QuoteSystemError(Exception):
    """报价系统基础异常类"""

    status_code = 500

    def __init__(self, message: str, error_code: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ConfigurationError(QuoteSystemError):
    """配置相关错误"""
    pass


class DatabaseError(QuoteSystemError):
    """数据库相关错误"""
    pass


class ValidationError(QuoteSystemError):
    """数据验证错误"""
    status_code = 400


class NotFoundError(QuoteSystemError):
    """资源不存在"""
    status_code = 404


class MaterialReferenceError(NotFoundError):
    """报价明细引用了不存在的材料，按请求错误处理"""
    status_code = 400


class DuplicateKeyError(QuoteSystemError):
    """唯一约束冲突"""
    status_code = 409


# 错误代码常量
class ErrorCodes:
    """错误代码常量"""

    # 配置错误
    CONFIG_NOT_FOUND = "CONFIG_001"
    CONFIG_INVALID_FORMAT = "CONFIG_002"
    CONFIG_MISSING_KEY = "CONFIG_003"

    # 数据库错误
    DB_CONNECTION_FAILED = "DB_001"
    DB_QUERY_FAILED = "DB_002"
    DB_TRANSACTION_FAILED = "DB_003"
    DB_INTEGRITY_ERROR = "DB_004"

    # 验证错误
    VALIDATION_FAILED = "VAL_001"
    VALIDATION_INVALID_STATUS = "VAL_002"
    VALIDATION_INVALID_TRANSITION = "VAL_003"
    VALIDATION_MISSING_REQUIRED_FIELD = "VAL_004"

    # 资源错误
    MATERIAL_NOT_FOUND = "RES_001"
    QUOTE_NOT_FOUND = "RES_002"
    MATERIAL_REFERENCE_MISSING = "RES_003"

    # 编号错误
    QUOTE_NUMBER_CONFLICT = "NUM_001"

    # 未知错误
    INTERNAL_ERROR = "INTERNAL_ERROR"


def create_error_response(error: QuoteSystemError,
                          include_traceback: bool = False) -> Dict[str, Any]:
    """创建标准化的错误响应"""
    response = {
        "success": False,
        "error": error.message,
        "error_code": error.error_code,
    }
    if error.context:
        response["context"] = error.context

    if include_traceback:
        import traceback
        response["traceback"] = traceback.format_exc()

    return response

