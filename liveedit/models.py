"""
Data models for the nested grid layout and the persisted live-edit document.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── 枚举 ──────────────────────────────────────────────

class Direction(str, Enum):
    STACKED = "stacked"  # 单列，每行一个
    FLOWED = "flowed"  # 从左到右，按列数换行


# 旧版渲染器使用的 compactType 名称
_LEGACY_DIRECTIONS = {
    "vertical": Direction.STACKED,
    "horizontal": Direction.FLOWED,
}


def parse_direction(value: Any) -> Any:
    """接受 stacked/flowed，也兼容 vertical/horizontal。"""
    if isinstance(value, str) and value in _LEGACY_DIRECTIONS:
        return _LEGACY_DIRECTIONS[value]
    return value


class WireModel(BaseModel):
    """序列化使用 camelCase 字段名，构造时两种写法都接受。"""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── 布局树 ────────────────────────────────────────────

class GroupSpec(WireModel):
    """A nested grid owned by a group item."""
    items: List["LayoutItem"] = Field(default_factory=list, description="Child items, ordered")
    columns: int = Field(default=2, ge=1, description="Column count of the nested grid")
    direction: Direction = Field(default=Direction.STACKED, description="Stacking direction")
    padding: int = Field(default=8, ge=0, le=32, description="Padding in pixels")

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, value: Any) -> Any:
        return parse_direction(value)


class LayoutItem(WireModel):
    """A single node in the layout tree: either a leaf or a group, never both."""
    id: str = Field(min_length=1, description="Unique identifier for layout engine")
    x: int = Field(default=0, ge=0, description="X position in grid columns")
    y: int = Field(default=0, ge=0, description="Y position in grid rows")
    w: int = Field(default=1, ge=1, description="Width in grid columns")
    h: int = Field(default=1, ge=1, description="Height in grid rows")
    child_ref: Optional[int] = Field(default=None, ge=0, alias="childRef",
                                     description="Index into the external component list")
    group: Optional[GroupSpec] = Field(default=None, description="Present only on group nodes")
    static: Optional[bool] = Field(default=None, description="Renderer lock flag, passed through")

    @model_validator(mode="after")
    def check_leaf_or_group(self) -> "LayoutItem":
        if (self.child_ref is None) == (self.group is None):
            raise ValueError(f"item '{self.id}' must be exactly one of leaf (childRef) or group")
        return self

    @property
    def is_group(self) -> bool:
        return self.group is not None


GroupSpec.model_rebuild()


class LayoutDocument(WireModel):
    """Root container of a grid surface, stored in the surface's props."""
    layout: List[LayoutItem] = Field(default_factory=list)
    cols: int = Field(default=4, ge=1)
    row_height: int = Field(default=100, ge=1, alias="rowHeight")
    padding: int = Field(default=16, ge=0, le=32)
    compact_type: Direction = Field(default=Direction.STACKED, alias="compactType")

    @field_validator("compact_type", mode="before")
    @classmethod
    def normalize_direction(cls, value: Any) -> Any:
        return parse_direction(value)

    @classmethod
    def from_props(cls, props: Dict[str, Any]) -> "LayoutDocument":
        known = {k: v for k, v in props.items() if k in _LAYOUT_PROPS and v is not None}
        return cls.model_validate(known)

    def to_props(self, base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """合并回 props；未知字段原样保留。"""
        props = dict(base or {})
        props.update(self.to_wire())
        return props


_LAYOUT_PROPS = {"layout", "cols", "rowHeight", "padding", "compactType"}


# ── 持久化文档 ────────────────────────────────────────

class ComponentConfig(BaseModel):
    """One addressable surface in the persisted document."""
    type: str
    file: Optional[str] = None
    props: Dict[str, Any] = Field(default_factory=dict)


class LiveEditConfig(WireModel):
    """The whole persisted document (.liveedit.config.json)."""
    schema_: str = Field(default="liveedit/v1", alias="schema")
    components: Dict[str, ComponentConfig] = Field(default_factory=dict)


# ── 请求 / 消息 ───────────────────────────────────────

class ConfigPatchBody(WireModel):
    surface_id: str = Field(alias="surfaceId")
    prop_name: str = Field(alias="propName")
    new_value: Any = Field(alias="newValue")


class ConfigBatchBody(WireModel):
    surface_id: str = Field(alias="surfaceId")
    updates: Dict[str, Any] = Field(default_factory=dict)


class ResetConfigBody(BaseModel):
    action: str
    config: Optional[Dict[str, Any]] = None


CONFIG_UPDATE_EVENT = "config-update"


def config_update_message(config: Dict[str, Any]) -> Dict[str, Any]:
    """构造广播消息。"""
    return {"type": "custom", "event": CONFIG_UPDATE_EVENT, "data": {"config": config}}
