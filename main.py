"""
Grid Live-Edit 主入口：启动 FastAPI 后端服务。
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from liveedit import api
from liveedit.broadcast import ConnectionManager
from liveedit.config_store import ConfigStore
from liveedit.settings import AppSettings, load_settings

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan 事件处理：启动时检查配置文件。"""
    store: ConfigStore = app.state.store
    if not store.path.exists():
        # 文档由外部初始化步骤创建
        logger.warning(f"配置文件不存在: {store.path}，补丁请求将失败直到文件被创建")

    yield  # 应用运行中

    logger.info("正在关闭...")


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """创建并配置 FastAPI 应用。"""
    if settings is None:
        settings = load_settings()

    app = FastAPI(
        title="Grid Live-Edit API",
        description="Nested grid layout persistence and real-time broadcast",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── 初始化核心组件 ────────────────────────────────────────
    connections = ConnectionManager(send_timeout=settings.write_timeout)
    store = ConfigStore(
        settings.document_path,
        connections=connections,
        default_path=settings.default_document_path,
        timeout=settings.write_timeout,
    )

    # 注入依赖到 API 模块
    api.init_api(store=store, connections=connections)
    api.register_error_handlers(app)

    # 注册 API 路由
    app.include_router(api.router)

    app.state.settings = settings
    app.state.store = store
    app.state.connections = connections

    return app


def main():
    """主入口。"""
    settings = load_settings()
    if len(sys.argv) > 1:
        settings.port = int(sys.argv[1])

    logger.info(f"🚀 启动 Grid Live-Edit 后端 (port={settings.port})...")

    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
