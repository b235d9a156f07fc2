"""
配置加载器：从 YAML 文件读取服务设置，环境变量可覆盖。
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SETTINGS_SEARCH_PATHS = [
    "config/liveedit.yaml",
    "liveedit.yaml",
]


class AppSettings(BaseModel):
    # 持久化文档，相对路径基于 root
    config_path: str = ".liveedit.config.json"
    default_config_path: str = ".liveedit.config.default.json"

    host: str = "127.0.0.1"
    port: int = 8400
    log_level: str = "info"
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"])

    # 单次磁盘读/写的上限（秒）
    write_timeout: float = Field(default=5.0, gt=0)

    root: str = "."

    def resolve(self, name: str) -> Path:
        path = Path(name)
        if path.is_absolute():
            return path
        return Path(self.root) / path

    @property
    def document_path(self) -> Path:
        return self.resolve(self.config_path)

    @property
    def default_document_path(self) -> Path:
        return self.resolve(self.default_config_path)


def find_settings_file(base: Path) -> Optional[Path]:
    """Find the settings YAML under the project root."""
    for p in _SETTINGS_SEARCH_PATHS:
        path = base / p
        if path.exists():
            return path
    return None


def load_settings(path: Optional[str | Path] = None) -> AppSettings:
    """
    Load settings from YAML, then apply environment overrides.
    缺少文件时使用默认值。
    """
    base = Path(os.getenv("LIVEEDIT_ROOT", "."))
    if path is None:
        path = find_settings_file(base)

    raw = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
        logger.info(f"已加载配置文件: {path}")

    raw.setdefault("root", str(base))

    if os.getenv("LIVEEDIT_PORT"):
        raw["port"] = int(os.environ["LIVEEDIT_PORT"])
    if os.getenv("LIVEEDIT_LOG_LEVEL"):
        raw["log_level"] = os.environ["LIVEEDIT_LOG_LEVEL"]

    return AppSettings.model_validate(raw)
