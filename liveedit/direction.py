"""
方向切换：双击右键在 stacked / flowed 之间切换，并重新排列直接子项。
"""

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from liveedit.errors import ItemNotFoundError
from liveedit.layout_tree import fitted_height, reflow, replace_item, require_item
from liveedit.models import Direction, LayoutItem
from liveedit.overlap import InteractionState

logger = logging.getLogger(__name__)

# 两次右键之间允许的最大间隔（秒）
DOUBLE_CLICK_WINDOW = 0.5


def flipped(direction: Direction) -> Direction:
    return Direction.FLOWED if direction == Direction.STACKED else Direction.STACKED


def toggle_group_direction(items: Sequence[LayoutItem], group_id: str) -> Sequence[LayoutItem]:
    """切换某个分组的方向，按新方向重排子项并重新计算高度。"""
    try:
        group_item = require_item(items, group_id)
    except ItemNotFoundError as e:
        logger.debug(f"方向切换跳过，{e}")
        return items
    if group_item.group is None:
        return items

    group = group_item.group
    direction = flipped(group.direction)
    children = reflow(group.items, direction, group.columns)
    updated = group_item.model_copy(update={
        "h": fitted_height(group_item.h, len(children), direction, group.columns),
        "group": group.model_copy(update={"items": children, "direction": direction}),
    })
    logger.info(f"🔄 分组 {group_id} 方向切换为 {direction.value}")
    return replace_item(items, updated)


def toggle_root_direction(
    items: Sequence[LayoutItem],
    direction: Direction,
    columns: int,
) -> Tuple[List[LayoutItem], Direction]:
    """切换根 grid 的方向，按根列数重排所有顶层项。"""
    new_direction = flipped(direction)
    logger.info(f"🔄 根 grid 方向切换为 {new_direction.value}")
    return reflow(items, new_direction, columns), new_direction


class ContextMenuEvent:
    """右键事件；处理者调用 stop_propagation 后不再向外层 grid 冒泡。"""

    def __init__(self, group_id: Optional[str] = None, timestamp: Optional[float] = None):
        self.group_id = group_id
        self.timestamp = timestamp
        self.propagation_stopped = False

    def stop_propagation(self):
        self.propagation_stopped = True


class RightClickGesture:
    """
    双击右键检测。
    每次右键计数 +1，超过 500ms 无操作则清零；
    计数达到 2 时触发并立即清零，第三次右键重新开始计数。
    状态保存在传入的 InteractionState 中。
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None, window: float = DOUBLE_CLICK_WINDOW):
        self._clock = clock or time.monotonic
        self.window = window

    def register(self, state: InteractionState, timestamp: Optional[float] = None) -> bool:
        now = self._clock() if timestamp is None else timestamp
        if state.last_right_click_at is not None and now - state.last_right_click_at > self.window:
            state.right_clicks = 0

        state.right_clicks += 1
        state.last_right_click_at = now

        if state.right_clicks >= 2:
            state.right_clicks = 0
            state.last_right_click_at = None
            return True
        return False
