"""
同步客户端：本地修改乐观应用后推送到服务端，并把服务端广播回来的文档整体替换到本地。

每个 surface 有两个状态：
- IDLE：本地修改会发送到服务端
- APPLYING_REMOTE：正在应用远端文档，此期间的本地修改只在本地生效，
  避免把服务端自己的回声当成新的用户编辑再发回去
"""

import asyncio
import copy
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set

import httpx

from liveedit.errors import TransportError
from liveedit.models import CONFIG_UPDATE_EVENT

logger = logging.getLogger(__name__)

CONFIG_URL = "/.liveedit.config.json"
DEFAULT_CONFIG_URL = "/.liveedit.config.default.json"
PATCH_URL = "/_liveedit/config"
BATCH_PATCH_URL = "/_liveedit/config-batch"
ACTION_URL = "/_liveedit/patch"


class SyncPhase(str, Enum):
    IDLE = "idle"
    APPLYING_REMOTE = "applying_remote"


class SyncClient:
    """
    持有文档的缓存副本（镜像，而非所有者）。
    收到广播时整体替换，最后写入者胜出。
    """

    def __init__(self, http: httpx.AsyncClient):
        self._http = http
        self._config: Optional[Dict[str, Any]] = None
        # surface_id -> SyncPhase
        self._phases: Dict[str, SyncPhase] = {}
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []
        self._pending: Set[asyncio.Task] = set()
        # 本地或远端每次变更 +1，用来识别过期的拉取结果
        self._revision = 0
        self.last_error: Optional[TransportError] = None

    # ── 状态 ──────────────────────────────────────────

    @property
    def config(self) -> Optional[Dict[str, Any]]:
        return self._config

    def phase(self, surface_id: str) -> SyncPhase:
        return self._phases.get(surface_id, SyncPhase.IDLE)

    def get_props(self, surface_id: str) -> Dict[str, Any]:
        if not self._config:
            return {}
        component = self._config.get("components", {}).get(surface_id)
        return component.get("props", {}) if component else {}

    def subscribe(self, listener: Callable[[Dict[str, Any]], None]):
        """注册渲染回调；应用远端文档时在 APPLYING_REMOTE 状态下调用。"""
        self._listeners.append(listener)

    # ── 本地修改 ──────────────────────────────────────

    def update_props(self, surface_id: str, updates: Dict[str, Any]) -> Optional[asyncio.Task]:
        """乐观应用并发送完整字段值（不是 diff）。"""
        if not self._apply_local(surface_id, updates):
            return None
        if self.phase(surface_id) != SyncPhase.IDLE:
            logger.debug(f"[{surface_id}] ⏭️ 跳过保存 - 变更来自远端配置")
            return None
        logger.debug(f"[{surface_id}] 📤 发送批量更新: {', '.join(updates)}")
        return self._spawn(self._send(
            "PATCH", BATCH_PATCH_URL, {"surfaceId": surface_id, "updates": updates},
        ))

    def update_prop(self, surface_id: str, prop: str, value: Any) -> Optional[asyncio.Task]:
        """单字段版本。"""
        if not self._apply_local(surface_id, {prop: value}):
            return None
        if self.phase(surface_id) != SyncPhase.IDLE:
            logger.debug(f"[{surface_id}] ⏭️ 跳过保存 - 变更来自远端配置")
            return None
        return self._spawn(self._send(
            "PATCH", PATCH_URL, {"surfaceId": surface_id, "propName": prop, "newValue": value},
        ))

    def _apply_local(self, surface_id: str, updates: Dict[str, Any]) -> bool:
        if not self._config or surface_id not in self._config.get("components", {}):
            logger.warning(f"⚠️ 无法更新 {surface_id}: 配置中不存在")
            return False

        component = self._config["components"][surface_id]
        self._config = {
            **self._config,
            "components": {
                **self._config["components"],
                surface_id: {**component, "props": {**component.get("props", {}), **updates}},
            },
        }
        self._revision += 1
        return True

    # ── 远端更新 ──────────────────────────────────────

    def handle_message(self, message: Dict[str, Any]) -> bool:
        """处理广播消息，返回是否应用了新文档。"""
        if message.get("type") != "custom" or message.get("event") != CONFIG_UPDATE_EVENT:
            return False
        config = (message.get("data") or {}).get("config")
        if not isinstance(config, dict):
            logger.warning(f"收到无效的广播消息: {message}")
            return False
        self.apply_remote(config)
        return True

    def apply_remote(self, config: Dict[str, Any]):
        """
        整体替换本地文档。
        监听者（渲染）运行期间所有 surface 处于 APPLYING_REMOTE，结束后回到 IDLE。
        """
        surface_ids = list(config.get("components", {}))
        for surface_id in surface_ids:
            self._phases[surface_id] = SyncPhase.APPLYING_REMOTE
        try:
            self._config = copy.deepcopy(config)
            self._revision += 1
            logger.debug(f"📥 应用远端配置 ({len(surface_ids)} 个组件)")
            for listener in list(self._listeners):
                listener(self._config)
        finally:
            for surface_id in surface_ids:
                self._phases[surface_id] = SyncPhase.IDLE

    async def consume(self, stream: AsyncIterator[Dict[str, Any]]):
        """从任意异步消息流中读取广播。"""
        async for message in stream:
            self.handle_message(message)

    # ── 拉取 / 重置 ───────────────────────────────────

    async def start(self) -> bool:
        """初始挂载时拉取完整文档。"""
        return await self.refresh()

    async def on_focus(self) -> bool:
        """窗口重新获得焦点：推送通道不保证送达，重新拉取。"""
        return await self.refresh()

    async def refresh(self) -> bool:
        revision = self._revision
        try:
            response = await self._request("GET", CONFIG_URL)
        except TransportError as e:
            logger.error(f"❌ 拉取配置失败: {e}")
            self.last_error = e
            return False

        if revision != self._revision:
            # 请求期间本地已有更新的修改，丢弃这次结果
            logger.debug("拉取结果已过期，忽略")
            return False
        self.apply_remote(response.json())
        return True

    async def reset_to_default(self):
        """读取默认文档并覆盖服务端配置。失败时抛出 TransportError。"""
        response = await self._request("GET", DEFAULT_CONFIG_URL)
        default_config = response.json()
        await self._request("POST", ACTION_URL, {"action": "reset-config", "config": default_config})
        self.apply_remote(default_config)
        logger.info("配置已重置为默认值")

    # ── 发送 ──────────────────────────────────────────

    async def drain(self):
        """等待所有未完成的补丁发送。"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, method: str, url: str, payload: Dict[str, Any]):
        # 失败不重试，本地乐观状态保留到下一次成功同步或拉取
        try:
            await self._request(method, url, payload)
            logger.debug("✅ 服务端已确认更新")
        except TransportError as e:
            logger.error(f"❌ Live-edit 更新失败: {e}")
            self.last_error = e

    async def _request(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await self._http.request(method, url, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        if response.is_error:
            raise TransportError(f"{method} {url} -> {response.status_code}: {response.text}")
        return response
