"""
广播通道：维护所有已连接的 WebSocket，把文档更新推送给每一个客户端（包括发起者）。
"""

import asyncio
import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """WebSocket 连接集合。"""

    def __init__(self, send_timeout: float = 5.0):
        # 单个连接发送的上限（秒），广播在写入队列内执行，不能被慢客户端卡住
        self.send_timeout = send_timeout
        self._connections: Set[WebSocket] = set()

    @property
    def count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._connections.add(websocket)
        logger.info(f"🔌 客户端已连接 (当前 {self.count} 个)")

    def disconnect(self, websocket: WebSocket):
        if websocket in self._connections:
            self._connections.discard(websocket)
            logger.info(f"客户端已断开 (剩余 {self.count} 个)")

    async def broadcast(self, message: Dict[str, Any]):
        """
        推送给所有连接，不区分发起者。
        推送是尽力而为：发送失败或超时的连接直接移除，客户端会在重新获得焦点时拉取。
        """
        for websocket in list(self._connections):
            try:
                await asyncio.wait_for(websocket.send_json(message), self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"广播发送超时 ({self.send_timeout}s)，移除连接")
                self.disconnect(websocket)
            except Exception as e:
                logger.warning(f"广播发送失败，移除连接: {e}")
                self.disconnect(websocket)
        logger.info(f"📡 已广播配置更新给 {self.count} 个客户端")
