"""
配置存储：服务端唯一的数据源。

所有对同一文档的修改都通过一个有序队列执行：读取、修改、写入、广播
在队列中依次完成，不会与其他请求交错，因此不会丢失并发更新。
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import ValidationError

from liveedit.broadcast import ConnectionManager
from liveedit.errors import (
    ConfigValidationError,
    DocumentNotFoundError,
    SerializationError,
    StorageTimeoutError,
)
from liveedit.layout_tree import dump_layout, load_layout
from liveedit.models import Direction, LiveEditConfig, config_update_message, parse_direction

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 数值字段的取值范围，单字段与批量补丁都适用
PROP_BOUNDS = {
    "rows": (1, 20),
    "cols": (1, 20),
    "gap": (0, 50),
    "padding": (0, 32),
}


class WriteQueue:
    """
    单文档的串行执行通道（FIFO）。
    asyncio.Lock 按等待顺序唤醒，等价于把每个操作链接在前一个之后。
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._lock = asyncio.Lock()

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        # 操作失败时锁同样会释放，后续排队的操作照常执行
        async with self._lock:
            return await operation()

    async def io(self, fn: Callable[..., T], *args: Any) -> T:
        """在线程中执行磁盘读写，超过期限则拒绝，避免队列被卡死。"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.timeout)
        except asyncio.TimeoutError:
            raise StorageTimeoutError(f"Storage call exceeded {self.timeout}s") from None


class WriteTicket:
    """
    一次写入的状态。
    调用方超时后将其标记为 abandoned，工作线程看到后删除临时文件而不是替换，
    防止已报告失败的写入在更新的写入之后落盘。
    """

    def __init__(self):
        self.abandoned = False
        self.committed = False


def normalize_prop(key: str, value: Any) -> Any:
    """数值字段截断到允许范围；layout / compactType 做结构校验。"""
    if key in PROP_BOUNDS:
        low, high = PROP_BOUNDS[key]
        if isinstance(value, bool):
            raise ConfigValidationError(f"Invalid value for {key}: {value!r}")
        try:
            number = value if isinstance(value, int) else int(value)
        except (TypeError, ValueError):
            raise ConfigValidationError(f"Invalid value for {key}: {value!r}") from None
        return max(low, min(high, number))

    if key == "layout":
        return dump_layout(load_layout(value))

    if key == "compactType":
        try:
            return Direction(parse_direction(value)).value
        except ValueError:
            raise ConfigValidationError(f"Invalid compactType: {value!r}") from None

    return value


def serialize_document(config: Dict[str, Any]) -> str:
    """序列化并重新解析一次，防止写入损坏的 JSON。"""
    try:
        text = json.dumps(config, indent=2, ensure_ascii=False, allow_nan=False)
        json.loads(text)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Invalid JSON generated: {e}") from e
    return text


class ConfigStore:
    """
    持久化单个 JSON 文档。
    每次修改都整体重写文件，成功后把完整文档广播给所有客户端。
    """

    def __init__(
        self,
        path: str | Path,
        connections: Optional[ConnectionManager] = None,
        default_path: Optional[str | Path] = None,
        timeout: float = 5.0,
    ):
        self.path = Path(path)
        self.default_path = Path(default_path) if default_path else None
        self._connections = connections
        self._queue = WriteQueue(timeout)
        # 保护 WriteTicket 状态与 os.replace，使超时放弃与落盘互斥
        self._replace_lock = threading.Lock()
        logger.info(f"配置文件: {self.path}")

    # ── 读取 ──────────────────────────────────────────

    async def read_document(self) -> Dict[str, Any]:
        return await self._queue.io(self._load, self.path)

    async def read_default_document(self) -> Dict[str, Any]:
        if self.default_path is None:
            raise DocumentNotFoundError("No default config configured")
        return await self._queue.io(self._load, self.default_path)

    # ── 修改 ──────────────────────────────────────────

    async def patch_prop(self, surface_id: str, prop: str, value: Any) -> Dict[str, Any]:
        """单字段补丁。"""
        return await self._queue.run(lambda: self._apply(surface_id, {prop: value}))

    async def patch_batch(self, surface_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """批量补丁。"""
        return await self._queue.run(lambda: self._apply(surface_id, updates))

    async def reset(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """用完整文档替换持久化内容。"""
        try:
            LiveEditConfig.model_validate(config)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid config: {e}") from e

        async def _reset():
            await self._commit(config)
            logger.info("✅ 配置已重置")
            return config

        return await self._queue.run(_reset)

    async def _apply(self, surface_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        config = await self._queue.io(self._load, self.path)

        component = config.get("components", {}).get(surface_id)
        if component is None:
            raise ConfigValidationError(f"Component not found: {surface_id}")

        # 先全部校验，再修改
        normalized = {key: normalize_prop(key, value) for key, value in updates.items()}
        component.setdefault("props", {}).update(normalized)

        await self._commit(config)
        logger.info(f"✅ 已更新 {surface_id}: {', '.join(normalized)}")
        return config

    async def _commit(self, config: Dict[str, Any]):
        text = serialize_document(config)
        ticket = WriteTicket()
        try:
            await self._queue.io(self._write, text, ticket)
        except StorageTimeoutError:
            with self._replace_lock:
                landed = ticket.committed
                ticket.abandoned = True
            if not landed:
                raise
            # 超时与替换同时发生：文件已是新内容，按成功处理
            logger.warning("存储调用超时，但写入已完成")
        if self._connections is not None:
            await self._connections.broadcast(config_update_message(config))

    # ── 磁盘 ──────────────────────────────────────────

    @staticmethod
    def _load(path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise DocumentNotFoundError(f"Config file not found: {path}") from None
        except json.JSONDecodeError as e:
            raise SerializationError(f"Stored config is not valid JSON: {e}") from e

    def _write(self, text: str, ticket: WriteTicket):
        # 每次写入使用独立的临时文件，替换前确认调用方没有放弃这次写入
        tmp_path = self._write_temp(text)
        try:
            with self._replace_lock:
                if ticket.abandoned:
                    logger.warning(f"丢弃已超时的写入: {tmp_path.name}")
                    return
                os.replace(tmp_path, self.path)
                ticket.committed = True
        finally:
            if not ticket.committed:
                tmp_path.unlink(missing_ok=True)

    def _write_temp(self, text: str) -> Path:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.path.parent,
            prefix=self.path.name + ".", suffix=".tmp", delete=False,
        ) as f:
            f.write(text)
        return Path(f.name)
