"""
FastAPI 路由：补丁、批量补丁、重置、文档读取，以及广播用的 WebSocket。
"""

import logging
from typing import Any

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from liveedit.broadcast import ConnectionManager
from liveedit.config_store import ConfigStore
from liveedit.errors import ConfigValidationError, LiveEditError
from liveedit.models import ConfigBatchBody, ConfigPatchBody, ResetConfigBody

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_ACTION = "reset-config"

# 这些全局引用会在 main.py 中注入
_store: ConfigStore = None
_connections: ConnectionManager = None


def init_api(store: ConfigStore, connections: ConnectionManager):
    """注入全局依赖（由 main.py 调用）。"""
    global _store, _connections
    _store = store
    _connections = connections


def register_error_handlers(app: FastAPI):
    """所有错误都以 {error: message} 返回。"""

    @app.exception_handler(LiveEditError)
    async def live_edit_error_handler(request: Request, exc: LiveEditError):
        logger.error(f"❌ Live Edit Error ({request.url.path}): {exc}")
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"请求体无效 ({request.url.path}): {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": f"Malformed request body: {exc.errors()}"})


# ── 补丁 ──────────────────────────────────────────────

@router.patch("/_liveedit/config")
async def patch_config(body: ConfigPatchBody) -> dict:
    """更新单个组件属性。"""
    await _store.patch_prop(body.surface_id, body.prop_name, body.new_value)
    return {"success": True}


@router.patch("/_liveedit/config-batch")
async def patch_config_batch(body: ConfigBatchBody) -> dict:
    """批量更新组件属性。"""
    await _store.patch_batch(body.surface_id, body.updates)
    return {"success": True}


@router.post("/_liveedit/patch")
async def patch_action(body: ResetConfigBody) -> dict:
    """文档级操作，目前只有 reset-config。"""
    if body.action != RESET_ACTION:
        return JSONResponse(status_code=400, content={"error": "Unknown action"})
    if body.config is None:
        raise ConfigValidationError("Missing 'config' for reset-config")

    await _store.reset(body.config)
    return {"success": True}


# ── 文档读取 ──────────────────────────────────────────

@router.get("/.liveedit.config.json")
async def get_config() -> dict[str, Any]:
    """初始加载与重新获得焦点时的完整文档。"""
    return await _store.read_document()


@router.get("/.liveedit.config.default.json")
async def get_default_config() -> dict[str, Any]:
    """重置时使用的默认文档。"""
    return await _store.read_default_document()


# ── 广播 ──────────────────────────────────────────────

@router.websocket("/_liveedit/ws")
async def config_updates(websocket: WebSocket):
    """订阅 config-update 广播。客户端发送的内容被忽略。"""
    await _connections.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        _connections.disconnect(websocket)
