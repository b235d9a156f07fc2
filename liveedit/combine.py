"""
合并 / 拆分引擎。

合并：拖拽结束时把被拖拽项放入目标分组，或与目标叶子组成新分组。
拆分：把分组的子项平铺回所在列表。
目标 id 不存在（过期的并发编辑）时静默返回原列表。
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence

from liveedit.errors import ItemNotFoundError
from liveedit.layout_tree import (
    IdFactory,
    collect_ids,
    fitted_height,
    origins,
    remove_item,
    replace_item,
    require_item,
    settle_origin,
    slot_for,
)
from liveedit.models import Direction, GroupSpec, LayoutItem

logger = logging.getLogger(__name__)

# 新分组的默认值
NEW_GROUP_COLUMNS = 2
NEW_GROUP_PADDING = 8
NEW_GROUP_MIN_W = 2
NEW_GROUP_MIN_H = 3


def combine(
    items: Sequence[LayoutItem],
    dragged_id: str,
    target_id: str,
    ids: IdFactory,
    taken: Optional[Iterable[str]] = None,
) -> Sequence[LayoutItem]:
    """
    把 dragged 合并到 target。
    taken 为整棵树已使用的 id（默认只取当前列表的子树）。
    无操作时返回传入的同一个列表对象。
    """
    if dragged_id == target_id:
        return items

    try:
        source = require_item(items, dragged_id)
        target = require_item(items, target_id)
    except ItemNotFoundError as e:
        logger.debug(f"合并跳过，{e}")
        return items

    taken = set(taken) if taken is not None else collect_ids(items)
    logger.info(f"🔗 合并: {dragged_id} + {target_id}")

    if target.group is not None:
        return _add_to_group(items, source, target, ids, taken)
    return _create_group(items, source, target, ids, taken)


def _add_to_group(items, source: LayoutItem, target: LayoutItem, ids: IdFactory, taken) -> List[LayoutItem]:
    """目标已是分组：追加到其子项末尾。"""
    group = target.group
    x, y = slot_for(len(group.items), group.direction, group.columns)
    x, y = settle_origin(origins(group.items), x, y)

    # 保留 source 自身的 childRef / group，允许把分组拖进分组
    child = source.model_copy(update={
        "id": ids.mint(f"{source.id}-n", taken),
        "x": x,
        "y": y,
        "w": 1,
        "h": 1,
    })
    children = list(group.items) + [child]
    updated = target.model_copy(update={
        # 原点被下移时，高度至少覆盖到新子项所在行的下一行
        "h": max(fitted_height(target.h, len(children), group.direction, group.columns), y + 2),
        "group": group.model_copy(update={"items": children}),
    })
    return replace_item(remove_item(items, source.id), updated)


def _create_group(items, source: LayoutItem, target: LayoutItem, ids: IdFactory, taken) -> List[LayoutItem]:
    """两个叶子组成新分组，停在 target 原来的位置，避免视觉上的跳动。"""
    target_child = target.model_copy(update={"id": ids.rekey(target.id, taken), "x": 0, "y": 0, "w": 1, "h": 1})
    source_child = source.model_copy(update={"id": ids.rekey(source.id, taken), "x": 1, "y": 0, "w": 1, "h": 1})

    new_group = LayoutItem(
        id=ids.mint("nested", taken),
        x=target.x,
        y=target.y,
        w=max(source.w, target.w, NEW_GROUP_MIN_W),
        h=max(source.h, target.h, NEW_GROUP_MIN_H),
        group=GroupSpec(
            items=[target_child, source_child],
            columns=NEW_GROUP_COLUMNS,
            direction=Direction.FLOWED,
            padding=NEW_GROUP_PADDING,
        ),
    )
    remaining = [item for item in items if item.id not in (source.id, target.id)]
    return remaining + [new_group]


def uncombine(
    items: Sequence[LayoutItem],
    group_id: str,
    columns: int,
    ids: IdFactory,
    taken: Optional[Iterable[str]] = None,
) -> Sequence[LayoutItem]:
    """
    拆分分组：子项按所在 grid 的列数（不是分组自身的列数）铺开。
    子分组保留嵌套结构，并按子项数量重新估算高度。
    """
    try:
        group_item = require_item(items, group_id)
    except ItemNotFoundError as e:
        logger.debug(f"拆分跳过，{e}")
        return items
    if group_item.group is None:
        logger.debug(f"拆分跳过，{group_id} 不是分组")
        return items

    taken = set(taken) if taken is not None else collect_ids(items)
    remaining = remove_item(items, group_id)
    occupied = origins(remaining)

    extracted = []
    for k, child in enumerate(group_item.group.items):
        x, y = settle_origin(
            occupied,
            group_item.x + (k % columns),
            group_item.y + (k // columns),
        )
        occupied.add((x, y))
        if child.group is not None:
            h = max(2, math.ceil(len(child.group.items) / child.group.columns) + 1)
        else:
            h = 1
        extracted.append(child.model_copy(update={
            "id": ids.mint("item", taken, suffix=k),
            "x": x,
            "y": y,
            "w": 1,
            "h": h,
        }))

    logger.info(f"✂️ 拆分分组 {group_id}: 释放 {len(extracted)} 个子项")
    return remaining + extracted
