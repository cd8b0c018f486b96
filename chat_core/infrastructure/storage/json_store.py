import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.exceptions import StorageError
from chat_core.domain.store import STORE_INDEXES, PersistencePort

SETTINGS_FILE = "settings"


class JsonStore(PersistencePort):
    """基于本地 JSON 文件的持久化实现。

    每个 store 对应 root 下的一个 `<store>.json`，内容为 {id: item}；
    settings 保存在 `settings.json`。写入先落临时文件再 os.replace，保证单文件原子性。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(code="STORE_WRITE_ERROR", message=str(e))

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        return list(self._read(store).values())

    def get(self, store: str, item_id: str) -> Optional[Dict[str, Any]]:
        return self._read(store).get(item_id)

    def put(self, store: str, item: Dict[str, Any]) -> None:
        if "id" not in item:
            raise StorageError(code="STORE_WRITE_ERROR", message=f"item without id for store {store!r}")
        data = self._read(store)
        data[item["id"]] = copy.deepcopy(item)
        self._write(store, data)

    def delete(self, store: str, item_id: str) -> None:
        data = self._read(store)
        if data.pop(item_id, None) is not None:
            self._write(store, data)

    def get_by_index(self, store: str, index_name: str, value: Any) -> List[Dict[str, Any]]:
        if index_name not in STORE_INDEXES.get(store, ()):
            raise StorageError(code="STORE_READ_ERROR", message=f"unknown index {index_name!r} on {store!r}")
        return [item for item in self._read(store).values() if item.get(index_name) == value]

    def get_setting(self, key: str, default: Any = None) -> Any:
        data = self._read(SETTINGS_FILE)
        if key not in data:
            return default
        return data[key]

    def set_setting(self, key: str, value: Any) -> None:
        data = self._read(SETTINGS_FILE)
        data[key] = value
        self._write(SETTINGS_FILE, data)

    def _path(self, store: str) -> Path:
        return self._root / f"{store}.json"

    def _read(self, store: str) -> Dict[str, Any]:
        path = self._path(store)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(code="STORE_READ_ERROR", message=str(e), store=store)
        if not isinstance(data, dict):
            raise StorageError(code="STORE_READ_ERROR", message=f"{path} is not a mapping", store=store)
        return data

    def _write(self, store: str, data: Dict[str, Any]) -> None:
        path = self._path(store)
        tmp_path = self._root / f"{store}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(code="STORE_WRITE_ERROR", message=str(e), store=store)
