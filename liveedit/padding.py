"""
内边距调整：根 grid 与分组的 padding 都限制在 [0, 32]。
"""

from typing import Sequence

from liveedit.layout_tree import find_item, replace_item
from liveedit.models import LayoutItem

PADDING_MIN = 0
PADDING_MAX = 32
PADDING_STEP = 2


def clamp_padding(current: int, delta: int) -> int:
    return max(PADDING_MIN, min(PADDING_MAX, current + delta))


def adjust_group_padding(items: Sequence[LayoutItem], group_id: str, delta: int) -> Sequence[LayoutItem]:
    """只修改数据，不移动任何子项。"""
    group_item = find_item(items, group_id)
    if group_item is None or group_item.group is None:
        return items
    padding = clamp_padding(group_item.group.padding, delta)
    updated = group_item.model_copy(update={"group": group_item.group.model_copy(update={"padding": padding})})
    return replace_item(items, updated)
