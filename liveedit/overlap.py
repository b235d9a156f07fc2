"""
重叠检测：拖拽过程中判断被拖拽项与哪个项足够重叠，可以作为合并目标。
"""

import logging
from typing import Callable, List, Optional, Protocol, Sequence

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# 低于该百分比的短暂重叠不视为合并意图
OVERLAP_THRESHOLD = 50


class Cell(Protocol):
    id: str
    x: int
    y: int
    w: int
    h: int


class CellBox(BaseModel):
    """渲染器在拖拽中回传的实时格子坐标。"""
    id: str
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_renderer(cls, cell: dict) -> "CellBox":
        return cls(id=cell.get("i", cell.get("id")), x=cell["x"], y=cell["y"], w=cell["w"], h=cell["h"])


class InteractionState(BaseModel):
    """单个 grid 的交互瞬态（拖拽、重叠目标、右键计数）。"""
    dragging: bool = False
    dragged_id: Optional[str] = None
    overlap_target_id: Optional[str] = None
    right_clicks: int = 0
    last_right_click_at: Optional[float] = None

    def clear_drag(self):
        self.dragging = False
        self.dragged_id = None
        self.overlap_target_id = None


class TargetChanged(BaseModel):
    previous: Optional[str] = None
    current: Optional[str] = None


def compute_overlap(dragged: Cell, target: Cell) -> float:
    """
    被拖拽项面积中与目标相交的百分比 [0, 100]。
    矩形按半开区间 [x, x+w) × [y, y+h) 计算。
    """
    left = max(dragged.x, target.x)
    right = min(dragged.x + dragged.w, target.x + target.w)
    top = max(dragged.y, target.y)
    bottom = min(dragged.y + dragged.h, target.y + target.h)

    if left < right and top < bottom:
        intersection = (right - left) * (bottom - top)
        return intersection / (dragged.w * dragged.h) * 100
    return 0.0


def select_target(layout: Sequence[Cell], dragged_id: str) -> Optional[str]:
    """重叠最高且 >= 阈值的项；并列时列表中靠前者胜出。"""
    dragged = next((c for c in layout if c.id == dragged_id), None)
    if dragged is None:
        return None

    best_overlap = 0.0
    best_id = None
    for cell in layout:
        if cell.id == dragged_id:
            continue
        overlap = compute_overlap(dragged, cell)
        if overlap > best_overlap and overlap >= OVERLAP_THRESHOLD:
            best_overlap = overlap
            best_id = cell.id
    return best_id


class OverlapTracker:
    """只在选中目标变化时通知监听者，避免视觉反馈闪烁。"""

    def __init__(self):
        self._listeners: List[Callable[[TargetChanged], None]] = []

    def subscribe(self, listener: Callable[[TargetChanged], None]):
        self._listeners.append(listener)

    def update(self, state: InteractionState, layout: Sequence[Cell]) -> Optional[TargetChanged]:
        if not state.dragging or state.dragged_id is None:
            return None

        target_id = select_target(layout, state.dragged_id)
        if target_id == state.overlap_target_id:
            return None

        event = TargetChanged(previous=state.overlap_target_id, current=target_id)
        state.overlap_target_id = target_id
        logger.debug(f"重叠目标变化: {event.previous} -> {event.current}")
        for listener in self._listeners:
            listener(event)
        return event
