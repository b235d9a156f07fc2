"""
Grid 交互控制：把渲染器回调（拖拽、缩放、右键、按钮）转换为布局树操作，
并通过 SyncClient 提交完整的根布局。

一个 GridSurface 对应文档中的一个 grid 组件；每个嵌套分组由一个
GridController 负责，按从根开始的分组 id 路径寻址。
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from liveedit.combine import combine, uncombine
from liveedit.direction import ContextMenuEvent, RightClickGesture, toggle_group_direction, toggle_root_direction
from liveedit.errors import ItemNotFoundError
from liveedit.layout_tree import (
    GroupPath,
    IdFactory,
    collect_ids,
    dump_layout,
    find_item,
    get_items_at,
    merge_renderer_layout,
    set_items_at,
    validate_tree,
)
from liveedit.models import LayoutDocument, LayoutItem
from liveedit.overlap import CellBox, InteractionState, OverlapTracker, TargetChanged
from liveedit.padding import adjust_group_padding, clamp_padding
from liveedit.sync_client import SyncClient

logger = logging.getLogger(__name__)


class GridController:
    """单个 grid（根或分组）的事件处理，只操作自己的直接子项。"""

    def __init__(self, surface: "GridSurface", path: GroupPath):
        self.surface = surface
        self.path = path
        self.state = InteractionState()
        self.tracker = OverlapTracker()

    @property
    def is_root(self) -> bool:
        return not self.path

    def items(self) -> Optional[List[LayoutItem]]:
        """当前列表；分组已被并发编辑删除时返回 None。"""
        try:
            return get_items_at(self.surface.document().layout, self.path)
        except ItemNotFoundError as e:
            logger.debug(f"[{self.surface.surface_id}] grid {self.path} 已不存在: {e}")
            return None

    def columns(self) -> int:
        doc = self.surface.document()
        if self.is_root:
            return doc.cols
        parent = get_items_at(doc.layout, self.path[:-1])
        return find_item(parent, self.path[-1]).group.columns

    # ── 拖拽 ──────────────────────────────────────────

    def drag_start(self, item_id: str):
        self.state.dragging = True
        self.state.dragged_id = item_id
        self.state.overlap_target_id = None

    def drag(self, cells: Iterable[Dict[str, Any]]) -> Optional[TargetChanged]:
        """渲染器的实时坐标；只在目标变化时返回事件。"""
        boxes = [CellBox.from_renderer(cell) for cell in cells]
        return self.tracker.update(self.state, boxes)

    def drag_stop(self) -> bool:
        """松手：有目标则合并。无论结果如何都清除瞬态，避免下次拖拽复用旧目标。"""
        dragged_id = self.state.dragged_id
        target_id = self.state.overlap_target_id
        self.state.clear_drag()

        if not dragged_id or not target_id or dragged_id == target_id:
            return False
        items = self.items()
        if items is None:
            return False

        updated = combine(items, dragged_id, target_id, self.surface.ids, taken=self.surface.all_ids())
        if updated is items:
            return False
        self.surface.commit_items(self.path, updated)
        return True

    def layout_changed(self, cells: Iterable[Dict[str, Any]]) -> bool:
        """移动/缩放后的布局。拖拽中忽略，防止项目跟着指针乱跳。"""
        if self.state.dragging:
            return False
        items = self.items()
        if items is None:
            return False
        updated = merge_renderer_layout(items, cells)
        if updated == items:
            return False
        self.surface.commit_items(self.path, updated)
        return True

    # ── 分组按钮 ──────────────────────────────────────

    def uncombine(self, group_id: str) -> bool:
        items = self.items()
        if items is None:
            return False
        updated = uncombine(items, group_id, self.columns(), self.surface.ids, taken=self.surface.all_ids())
        return self._commit_if_changed(items, updated)

    def adjust_padding(self, group_id: str, delta: int) -> bool:
        items = self.items()
        if items is None:
            return False
        return self._commit_if_changed(items, adjust_group_padding(items, group_id, delta))

    def toggle_direction(self, group_id: str) -> bool:
        items = self.items()
        if items is None:
            return False
        return self._commit_if_changed(items, toggle_group_direction(items, group_id))

    # ── 右键 ──────────────────────────────────────────

    def handle_context_menu(self, event: ContextMenuEvent) -> bool:
        """双击右键切换方向；总是阻止事件继续冒泡到外层 grid。"""
        event.stop_propagation()
        if not self.surface.gesture.register(self.state, event.timestamp):
            return False

        if event.group_id is not None:
            return self.toggle_direction(event.group_id)
        if self.is_root:
            return self.surface.toggle_root_direction()
        # 嵌套 grid 的空白处：切换该分组自身
        return self.surface.grid(self.path[:-1]).toggle_direction(self.path[-1])

    def _commit_if_changed(self, items: Sequence[LayoutItem], updated: Sequence[LayoutItem]) -> bool:
        if updated is items:
            return False
        self.surface.commit_items(self.path, list(updated))
        return True


class GridSurface:
    """一个 grid 组件（文档中的一个 surface）的全部交互。"""

    def __init__(
        self,
        surface_id: str,
        sync: SyncClient,
        ids: Optional[IdFactory] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.surface_id = surface_id
        self.sync = sync
        self.ids = ids or IdFactory()
        self.gesture = RightClickGesture(clock)
        self._controllers: Dict[GroupPath, GridController] = {}

    def document(self) -> LayoutDocument:
        return LayoutDocument.from_props(self.sync.get_props(self.surface_id))

    def all_ids(self) -> set:
        return collect_ids(self.document().layout)

    def grid(self, path: GroupPath = ()) -> GridController:
        path = tuple(path)
        if path not in self._controllers:
            self._controllers[path] = GridController(self, path)
        return self._controllers[path]

    # ── 提交 ──────────────────────────────────────────

    def commit_items(self, path: GroupPath, items: List[LayoutItem], **extra: Any):
        """把某层列表写回根布局，并发送完整的 layout。"""
        root = set_items_at(self.document().layout, path, items)
        validate_tree(root)
        updates = {"layout": dump_layout(root)}
        updates.update(extra)
        self.sync.update_props(self.surface_id, updates)

    # ── 根 grid 操作 ──────────────────────────────────

    def toggle_root_direction(self) -> bool:
        doc = self.document()
        items, direction = toggle_root_direction(doc.layout, doc.compact_type, doc.cols)
        self.commit_items((), items, compactType=direction.value)
        return True

    def adjust_root_padding(self, delta: int) -> bool:
        doc = self.document()
        padding = clamp_padding(doc.padding, delta)
        if padding == doc.padding:
            return False
        self.sync.update_props(self.surface_id, {"padding": padding})
        return True

    def context_menu(self, path: GroupPath = (), group_id: Optional[str] = None,
                     timestamp: Optional[float] = None) -> bool:
        """
        右键事件从最内层 grid 开始向外冒泡，
        第一个处理者阻止传播，因此嵌套分组的双击不会同时切换外层。
        """
        event = ContextMenuEvent(group_id=group_id, timestamp=timestamp)
        path = tuple(path)
        for depth in range(len(path), -1, -1):
            handled = self.grid(path[:depth]).handle_context_menu(event)
            if event.propagation_stopped:
                return handled
        return False
