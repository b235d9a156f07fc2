"""
布局树：查询与不可变修改。

所有修改函数都返回新的列表，调用方永远不会原地修改列表，
以便上层通过引用比较发现变化。操作只针对单个列表的直接子项，
嵌套由调用方按 group 路径逐层进入。
"""

import logging
import math
import time
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from pydantic import TypeAdapter, ValidationError

from liveedit.errors import ItemNotFoundError, LayoutValidationError
from liveedit.models import Direction, LayoutItem

logger = logging.getLogger(__name__)

GroupPath = Tuple[str, ...]

_layout_adapter = TypeAdapter(List[LayoutItem])


# ── 查询 ──────────────────────────────────────────────

def find_item(items: Sequence[LayoutItem], item_id: str) -> Optional[LayoutItem]:
    """Depth-one lookup within a single list."""
    for item in items:
        if item.id == item_id:
            return item
    return None


def require_item(items: Sequence[LayoutItem], item_id: str) -> LayoutItem:
    item = find_item(items, item_id)
    if item is None:
        raise ItemNotFoundError(item_id)
    return item


def walk_items(items: Iterable[LayoutItem]) -> Iterator[LayoutItem]:
    """深度优先遍历整棵树。"""
    for item in items:
        yield item
        if item.group is not None:
            yield from walk_items(item.group.items)


def collect_ids(items: Iterable[LayoutItem]) -> Set[str]:
    return {item.id for item in walk_items(items)}


def origins(items: Iterable[LayoutItem], exclude: Optional[str] = None) -> Set[Tuple[int, int]]:
    return {(item.x, item.y) for item in items if item.id != exclude}


# ── 不可变修改 ────────────────────────────────────────

def insert_item(items: Sequence[LayoutItem], item: LayoutItem, index: Optional[int] = None) -> List[LayoutItem]:
    result = list(items)
    if index is None:
        result.append(item)
    else:
        result.insert(index, item)
    return result


def remove_item(items: Sequence[LayoutItem], item_id: str) -> List[LayoutItem]:
    return [item for item in items if item.id != item_id]


def replace_item(items: Sequence[LayoutItem], item: LayoutItem) -> List[LayoutItem]:
    """按 id 替换；不存在时返回原样的新列表。"""
    return [item if existing.id == item.id else existing for existing in items]


def get_items_at(root: Sequence[LayoutItem], path: GroupPath) -> List[LayoutItem]:
    """Resolve the item list of the nested grid addressed by ``path``."""
    items = list(root)
    for group_id in path:
        group_item = require_item(items, group_id)
        if group_item.group is None:
            raise ItemNotFoundError(group_id)
        items = list(group_item.group.items)
    return items


def set_items_at(root: Sequence[LayoutItem], path: GroupPath, new_items: List[LayoutItem]) -> List[LayoutItem]:
    """Return a new root list with the nested list at ``path`` replaced."""
    if not path:
        return list(new_items)
    head, rest = path[0], path[1:]
    group_item = require_item(root, head)
    if group_item.group is None:
        raise ItemNotFoundError(head)
    inner = set_items_at(group_item.group.items, rest, new_items)
    updated = group_item.model_copy(update={"group": group_item.group.model_copy(update={"items": inner})})
    return replace_item(root, updated)


# ── 放置规则 ──────────────────────────────────────────

def slot_for(index: int, direction: Direction, columns: int) -> Tuple[int, int]:
    """flowed: 从左到右按列数换行；stacked: 单列。"""
    if direction == Direction.FLOWED:
        return index % columns, index // columns
    return 0, index


def fitted_height(current_h: int, count: int, direction: Direction, columns: int) -> int:
    """容纳 count 个子项所需高度，额外留一行。"""
    if direction == Direction.FLOWED:
        rows_needed = math.ceil(count / columns)
    else:
        rows_needed = count
    return max(current_h, rows_needed + 1)


def settle_origin(occupied: Set[Tuple[int, int]], x: int, y: int) -> Tuple[int, int]:
    """原点已被占用时向下移动，直到空闲。"""
    while (x, y) in occupied:
        y += 1
    return x, y


def reflow(items: Sequence[LayoutItem], direction: Direction, columns: int) -> List[LayoutItem]:
    """按方向重新计算每个直接子项的位置。"""
    result = []
    for index, item in enumerate(items):
        x, y = slot_for(index, direction, columns)
        result.append(item.model_copy(update={"x": x, "y": y}))
    return result


# ── id 生成 ───────────────────────────────────────────

class IdFactory:
    """
    基于时间戳生成新 id。
    同一会话内不会返回重复值，也会避开调用方传入的已占用 id。
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._minted: Set[str] = set()

    def mint(self, prefix: str, taken: Iterable[str] = (), suffix: Any = None) -> str:
        taken = set(taken)
        candidate = f"{prefix}-{int(self._clock() * 1000)}"
        if suffix is not None:
            candidate = f"{candidate}-{suffix}"
        unique = candidate
        counter = 0
        while unique in self._minted or unique in taken:
            counter += 1
            unique = f"{candidate}-{counter}"
        self._minted.add(unique)
        return unique

    def rekey(self, base: str, taken: Iterable[str] = ()) -> str:
        """优先使用 "{base}-n"，冲突时退回时间戳 id。"""
        taken = set(taken)
        candidate = f"{base}-n"
        if candidate not in taken and candidate not in self._minted:
            self._minted.add(candidate)
            return candidate
        return self.mint(candidate, taken)


# ── 序列化 ────────────────────────────────────────────

def load_layout(raw: Any) -> List[LayoutItem]:
    """校验原始 JSON 布局并检查 id 全局唯一。"""
    try:
        items = _layout_adapter.validate_python(raw)
    except ValidationError as e:
        raise LayoutValidationError(f"Invalid layout: {e}") from e
    validate_tree(items)
    return items


def dump_layout(items: Sequence[LayoutItem]) -> List[Dict[str, Any]]:
    return [item.to_wire() for item in items]


def validate_tree(items: Sequence[LayoutItem]):
    """id 必须在整棵树中唯一。叶子/分组互斥由模型本身保证。"""
    seen: Set[str] = set()
    for item in walk_items(items):
        if item.id in seen:
            raise LayoutValidationError(f"Duplicate item id in layout: {item.id}")
        seen.add(item.id)


def merge_renderer_layout(existing: Sequence[LayoutItem], cells: Iterable[Dict[str, Any]]) -> List[LayoutItem]:
    """
    应用渲染器回传的 (x, y, w, h)，保留现有项的 childRef / group。
    渲染器给出的是浮点数，取整后写回；未知 id 忽略。
    """
    result = []
    for cell in cells:
        current = find_item(existing, cell["i"] if "i" in cell else cell["id"])
        if current is None:
            logger.debug(f"渲染器返回未知项，忽略: {cell}")
            continue
        result.append(current.model_copy(update={
            "x": max(0, round(cell["x"])),
            "y": max(0, round(cell["y"])),
            "w": max(1, round(cell["w"])),
            "h": max(1, round(cell["h"])),
        }))
    return result
