"""
错误分类：服务端校验/序列化/存储错误，客户端传输错误，以及引擎层的查找失败。
"""


class LiveEditError(Exception):
    """所有 live-edit 错误的基类，status_code 用于 HTTP 响应。"""
    status_code = 500


class ConfigValidationError(LiveEditError):
    """未知 surface、非法字段值等；在任何修改之前拒绝。"""


class LayoutValidationError(ConfigValidationError):
    """布局树违反叶子/分组互斥或 id 全局唯一。"""


class SerializationError(LiveEditError):
    """候选 JSON 无法往返解析，写入被中止。"""


class StorageTimeoutError(LiveEditError):
    """磁盘读写超过期限，操作被拒绝以免队列卡死。"""


class DocumentNotFoundError(LiveEditError):
    status_code = 404


class TransportError(LiveEditError):
    """客户端发送补丁或拉取文档失败。"""


class ItemNotFoundError(LiveEditError):
    """引擎操作的目标 id 已不在列表中（通常来自过期的并发编辑）。"""
    status_code = 404

    def __init__(self, item_id: str):
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id
