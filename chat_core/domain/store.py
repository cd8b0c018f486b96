"""持久化端口抽象。

上层 Manager 不直接依赖具体存储实现，而是依赖此协议：

- 每个 store（providers/chats/projects）按主键 "id" 保存纯 dict 记录。
- settings 单独提供 get_setting/set_setting 键值接口。
- 所有方法失败时抛出 StorageError；put 按主键 upsert，可重复调用。
"""

from typing import Any, Dict, List, Optional, Protocol

STORE_PROVIDERS = "providers"
STORE_CHATS = "chats"
STORE_PROJECTS = "projects"

# 各 store 支持的二级索引（字段名即索引名）
STORE_INDEXES: Dict[str, tuple] = {
    STORE_PROVIDERS: ("name", "enabled"),
    STORE_CHATS: ("project_id", "created_at", "updated_at"),
    STORE_PROJECTS: ("name", "created_at"),
}

SETTING_ACTIVE_PROVIDER = "activeProvider"
SETTING_CURRENT_CHAT = "currentChat"
SETTING_CURRENT_PROJECT = "currentProject"


class PersistencePort(Protocol):
    def get_all(self, store: str) -> List[Dict[str, Any]]:
        ...

    def get(self, store: str, item_id: str) -> Optional[Dict[str, Any]]:
        ...

    def put(self, store: str, item: Dict[str, Any]) -> None:
        ...

    def delete(self, store: str, item_id: str) -> None:
        ...

    def get_by_index(self, store: str, index_name: str, value: Any) -> List[Dict[str, Any]]:
        ...

    def get_setting(self, key: str, default: Any = None) -> Any:
        ...

    def set_setting(self, key: str, value: Any) -> None:
        ...
