"""
Middleware for the quoting system API.
Request logging, error envelopes, per-client rate limiting and security headers.
"""

import time
import traceback
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from utils import (
    api_logger, config_manager, QuoteSystemError, ValidationError, ErrorCodes, create_error_response
)

RATE_LIMIT_WINDOW = 60.0


def _include_traceback() -> bool:
    return not config_manager.get_app_config().is_production


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求日志：方法、路径、状态码和耗时，并写入 X-Process-Time / X-Request-ID"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex[:12]
        start_time = time.perf_counter()
        target = f"{request.method} {request.url.path}"

        try:
            response = await call_next(request)
        except Exception as e:
            api_logger.error(f"[API] {target} [{request_id}] - ERROR - "
                             f"{time.perf_counter() - start_time:.3f}s - {e}")
            raise

        process_time = time.perf_counter() - start_time
        api_logger.info(f"[API] {target} [{request_id}] - {response.status_code} - {process_time:.3f}s")

        response.headers["X-Process-Time"] = f"{process_time:.6f}"
        response.headers["X-Request-ID"] = request_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """兜底未处理的异常，统一返回 500 错误响应"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except QuoteSystemError as e:
            return quote_system_error_handler(request, e)

        except Exception as e:
            api_logger.error(f"[API] Unexpected error on {request.method} {request.url.path}: {e}", exc_info=True)
            content = {
                "success": False,
                "error": "Internal server error",
                "error_code": ErrorCodes.INTERNAL_ERROR,
            }
            if _include_traceback():
                content["traceback"] = traceback.format_exc()
            return JSONResponse(status_code=500, content=content)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """按客户端 IP 的滑动窗口限流，只作用于 /api 路径；limit <= 0 时关闭"""

    def __init__(self, app, requests_per_minute: int = 100):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _prune(self, now: float) -> None:
        for client_ip in [ip for ip, hits in self._hits.items() if not hits or now - hits[-1] >= RATE_LIMIT_WINDOW]:
            del self._hits[client_ip]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.requests_per_minute <= 0 or not request.url.path.startswith("/api"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        self._prune(now)

        hits = self._hits[client_ip]
        while hits and now - hits[0] >= RATE_LIMIT_WINDOW:
            hits.popleft()

        if len(hits) >= self.requests_per_minute:
            retry_after = max(1, int(RATE_LIMIT_WINDOW - (now - hits[0])) + 1)
            api_logger.warning(f"[API] Rate limit exceeded for {client_ip} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                headers={"Retry-After": str(retry_after)},
                content={
                    "success": False,
                    "error": "Too many requests from this IP, please try again later.",
                    "error_code": "RATE_LIMIT_EXCEEDED",
                }
            )

        hits.append(now)
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """安全响应头"""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def quote_system_error_handler(request: Request, exc: QuoteSystemError) -> JSONResponse:
    """业务异常转换为标准错误响应"""
    if exc.status_code >= 500:
        api_logger.error(f"[API] {request.method} {request.url.path} failed: {exc}")
    else:
        api_logger.warning(f"[API] {request.method} {request.url.path} rejected: {exc}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc, include_traceback=exc.status_code >= 500 and _include_traceback())
    )


def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求校验失败返回 400，字段错误信息以逗号拼接"""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)

    error = ValidationError(", ".join(messages) or "Invalid request", ErrorCodes.VALIDATION_FAILED)
    api_logger.warning(f"[API] {request.method} {request.url.path} invalid request: {error.message}")
    return JSONResponse(status_code=400, content=create_error_response(error))


def setup_cors(app):
    """CORS；生产环境忽略通配符来源"""
    cors_origins = list(config_manager.get_api_config().cors_origins)

    if "*" in cors_origins and config_manager.get_app_config().is_production:
        api_logger.warning("[CORS] Wildcard origin ignored in production")
        cors_origins = [origin for origin in cors_origins if origin != "*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def setup_exception_handlers(app):
    app.add_exception_handler(QuoteSystemError, quote_system_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)


def setup_middleware(app):
    """注册中间件；后注册的在外层，日志最外，其次是错误兜底"""
    api_config = config_manager.get_api_config()

    setup_cors(app)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=api_config.rate_limit_per_minute)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
