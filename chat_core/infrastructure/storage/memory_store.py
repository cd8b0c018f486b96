"""进程内存储实现，主要用于测试与无需落盘的场景。"""

import copy
from typing import Any, Dict, List, Optional

from chat_core.domain.exceptions import StorageError
from chat_core.domain.store import STORE_INDEXES, PersistencePort


class InMemoryStore(PersistencePort):
    def __init__(self):
        self._stores: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._settings: Dict[str, Any] = {}

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(item) for item in self._stores.get(store, {}).values()]

    def get(self, store: str, item_id: str) -> Optional[Dict[str, Any]]:
        item = self._stores.get(store, {}).get(item_id)
        return copy.deepcopy(item) if item is not None else None

    def put(self, store: str, item: Dict[str, Any]) -> None:
        if "id" not in item:
            raise StorageError(code="STORE_WRITE_ERROR", message=f"item without id for store {store!r}")
        self._stores.setdefault(store, {})[item["id"]] = copy.deepcopy(item)

    def delete(self, store: str, item_id: str) -> None:
        self._stores.get(store, {}).pop(item_id, None)

    def get_by_index(self, store: str, index_name: str, value: Any) -> List[Dict[str, Any]]:
        if index_name not in STORE_INDEXES.get(store, ()):
            raise StorageError(code="STORE_READ_ERROR", message=f"unknown index {index_name!r} on {store!r}")
        return [copy.deepcopy(i) for i in self._stores.get(store, {}).values() if i.get(index_name) == value]

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def set_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value
