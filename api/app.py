"""
FastAPI application for the quoting system.
Main application entry point for the API server.
"""

import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI

from utils import api_logger, config_manager, get_local_time, __version__

from . import routes
from .middleware import setup_middleware, setup_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    api_logger.info("[API] Starting Quoting System API...")

    # 启动时初始化数据库，失败则终止启动
    await routes.quote_manager.initialize()
    api_logger.info("[API] QuoteManager initialized successfully")

    yield

    # 关闭时清理
    api_logger.info("[API] Shutting down Quoting System API...")
    await routes.quote_manager.close()


# 创建FastAPI应用
app = FastAPI(
    title="Quoting System API",
    description="Materials catalog and quote management API",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# 设置中间件和异常处理
setup_middleware(app)
setup_exception_handlers(app)

# 添加路由
app.include_router(routes.router, prefix="/api")


@app.get("/")
async def root():
    """根路径"""
    return {
        "success": True,
        "message": "Quoting System API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "materials": "/api/materials",
            "quotes": "/api/quotes",
            "dashboard": "/api/dashboard",
        }
    }


@app.get("/health")
async def health_check():
    """健康检查端点"""
    return {
        "success": True,
        "status": "healthy",
        "timestamp": get_local_time().isoformat(),
        "environment": config_manager.get_app_config().env,
        "version": __version__
    }


def run_server(host: str = None, port: int = None):
    """启动API服务"""
    api_config = config_manager.get_api_config()
    host = host or api_config.host
    port = port or api_config.port

    api_logger.info(f"[API] Starting server on {host}:{port}")

    # 开发模式
    if api_config.reload:
        uvicorn.run("api.app:app", host=host, port=port, reload=True, log_level="info")
    # 生产模式
    else:
        uvicorn.run(app, host=host, port=port, workers=api_config.workers, log_level="info")


if __name__ == "__main__":
    run_server()
