"""会话管理。

ChatManager 持有全部 Chat（id -> Chat）以及“当前会话” id：

- 任何时刻都恰好有一个当前会话；删除到一个不剩时会自动新建。
- 消息以毫秒 timestamp 作为身份键，同一会话内严格递增。
- 首条用户消息会在标题仍为占位符时自动生成标题。
"""

import copy
import json
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from chat_core.config.settings import settings
from chat_core.domain.exceptions import NotFoundError, ValidationError
from chat_core.domain.models import Chat, Message, Role, generate_id, now_ms
from chat_core.domain.store import SETTING_CURRENT_CHAT, STORE_CHATS, PersistencePort
from chat_core.infrastructure.logging.logger import logger

ROLES = ("system", "user", "assistant")
EXPORT_FORMATS = ("json", "markdown", "text")

UPDATABLE_FIELDS = frozenset({"title", "project_id", "system_prompt", "temperature", "metadata"})

_TITLE_MARKUP = re.compile(r"[#*_`]")


def _format_date(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


class ChatManager:
    """管理 Chat 集合与当前会话选择。"""

    def __init__(self, store: PersistencePort, cfg=settings):
        self._store = store
        self._settings = cfg
        self.chats: Dict[str, Chat] = {}
        self.current_chat_id: Optional[str] = None

    @property
    def default_title(self) -> str:
        return self._settings.default_chat_title

    # ---- 加载 ----

    def init(self) -> None:
        self.chats.clear()
        for data in self._store.get_all(STORE_CHATS):
            chat = self._build(data)
            self.chats[chat.id] = chat
        self.current_chat_id = self._store.get_setting(SETTING_CURRENT_CHAT)
        if not self.current_chat_id or self.current_chat_id not in self.chats:
            self.create_chat()

    # ---- 查询 ----

    def get(self, chat_id: str) -> Optional[Chat]:
        return self.chats.get(chat_id)

    def require(self, chat_id: str) -> Chat:
        chat = self.chats.get(chat_id)
        if chat is None:
            raise NotFoundError(code="CHAT_NOT_FOUND", message=f"Chat not found: {chat_id}")
        return chat

    def current_chat(self) -> Optional[Chat]:
        if self.current_chat_id is None:
            return None
        return self.chats.get(self.current_chat_id)

    def all_chats(self) -> List[Chat]:
        """全部会话，按 updated_at 倒序。"""
        return sorted(self.chats.values(), key=lambda c: c.updated_at, reverse=True)

    def chats_by_project(self, project_id: str) -> List[Chat]:
        return [c for c in self.all_chats() if c.project_id == project_id]

    def search(self, query: str) -> List[Chat]:
        """标题或任意消息内容包含 query（不区分大小写）的会话，按 updated_at 倒序。"""

        needle = query.lower()
        return [
            chat
            for chat in self.all_chats()
            if needle in chat.title.lower() or any(needle in m.content.lower() for m in chat.messages)
        ]

    def statistics(self) -> Dict[str, Any]:
        chats = list(self.chats.values())
        messages = [m for c in chats for m in c.messages]
        return {
            "total_chats": len(chats),
            "total_messages": len(messages),
            "user_messages": sum(1 for m in messages if m.role == "user"),
            "assistant_messages": sum(1 for m in messages if m.role == "assistant"),
            "oldest_chat": min((c.created_at for c in chats), default=None),
            "newest_chat": max((c.created_at for c in chats), default=None),
        }

    # ---- 会话生命周期 ----

    def create_chat(self, **data: Any) -> Chat:
        """新建会话、持久化并设为当前会话。"""

        chat = self._build(data)
        if chat.id in self.chats:
            raise ValidationError([f"Chat id {chat.id!r} already exists"])
        self.chats[chat.id] = chat
        self._save(chat)
        self.current_chat_id = chat.id
        self._store.set_setting(SETTING_CURRENT_CHAT, chat.id)
        logger.info("Chat created", extra={"extra": {"chat_id": chat.id, "project_id": chat.project_id}})
        return chat

    def update_chat(self, chat_id: str, **changes: Any) -> Chat:
        chat = self.require(chat_id)
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError([f"Unknown chat field {k!r}" for k in unknown])
        if "title" in changes:
            chat.title = changes["title"] or self.default_title
        if "project_id" in changes:
            chat.project_id = changes["project_id"] or None
        if "system_prompt" in changes:
            chat.system_prompt = changes["system_prompt"] or ""
        if "temperature" in changes:
            chat.temperature = float(changes["temperature"])
        if "metadata" in changes:
            chat.metadata = dict(changes["metadata"] or {})
        self._touch_and_save(chat)
        return chat

    def delete_chat(self, chat_id: str) -> None:
        """删除会话；若删除的是当前会话，提升最近更新的会话，没有则新建。"""

        self.require(chat_id)
        del self.chats[chat_id]
        self._store.delete(STORE_CHATS, chat_id)
        logger.info("Chat deleted", extra={"extra": {"chat_id": chat_id}})
        if self.current_chat_id == chat_id:
            remaining = self.all_chats()
            if remaining:
                self.set_current(remaining[0].id)
            else:
                self.create_chat()

    def set_current(self, chat_id: str) -> None:
        self.require(chat_id)
        self.current_chat_id = chat_id
        self._store.set_setting(SETTING_CURRENT_CHAT, chat_id)

    def clone_chat(self, chat_id: str) -> Chat:
        """复制会话（新 id 与时间戳，标题追加 " (Copy)"），不改变当前会话。"""

        source = self.require(chat_id)
        now = now_ms()
        clone = Chat(
            id=generate_id("chat"),
            title=f"{source.title} (Copy)",
            messages=copy.deepcopy(source.messages),
            project_id=source.project_id,
            system_prompt=source.system_prompt,
            temperature=source.temperature,
            created_at=now,
            updated_at=now,
            metadata=copy.deepcopy(source.metadata),
        )
        self.chats[clone.id] = clone
        self._save(clone)
        return clone

    # ---- 消息 ----

    def add_message(self, chat_id: str, role: Role, content: str, **meta: Any) -> Message:
        """追加一条消息，必要时根据首条用户消息推断标题。"""

        if role not in ROLES:
            raise ValidationError([f"Unknown message role {role!r}"])
        chat = self.require(chat_id)
        message = Message(role=role, content=content, timestamp=self._next_timestamp(chat), meta=dict(meta))
        chat.messages.append(message)
        if chat.title == self.default_title and role == "user" and chat.message_count("user") == 1:
            chat.title = self.generate_title(content)
        self._touch_and_save(chat)
        return message

    def update_message(self, chat_id: str, timestamp: int, content: Optional[str] = None, **meta: Any) -> Optional[Message]:
        """按 timestamp 更新消息内容/元数据；找不到消息时不做任何事。"""

        chat = self.require(chat_id)
        message = chat.find_message(timestamp)
        if message is None:
            return None
        if content is not None:
            message.content = content
        message.meta.update(meta)
        self._touch_and_save(chat)
        return message

    def append_delta(self, chat_id: str, timestamp: int, delta: str) -> Message:
        """把流式增量拼接到进行中的消息上，只改内存，完成后由 save() 落盘。"""

        chat = self.require(chat_id)
        message = chat.find_message(timestamp)
        if message is None:
            raise NotFoundError(code="MESSAGE_NOT_FOUND", message=f"Message {timestamp} not found in {chat_id}")
        message.content += delta
        return message

    def delete_message(self, chat_id: str, timestamp: int) -> None:
        chat = self.require(chat_id)
        chat.messages = [m for m in chat.messages if m.timestamp != timestamp]
        self._touch_and_save(chat)

    def clear_messages(self, chat_id: str) -> None:
        chat = self.require(chat_id)
        chat.messages = []
        self._touch_and_save(chat)

    def save(self, chat_id: str) -> Chat:
        chat = self.require(chat_id)
        self._touch_and_save(chat)
        return chat

    def generate_title(self, content: str) -> str:
        """去掉 markdown 标记字符，截断到 title_max_length 并追加省略号。"""

        max_length = self._settings.title_max_length
        title = _TITLE_MARKUP.sub("", content).strip()
        if len(title) > max_length:
            title = title[:max_length] + "..."
        return title or self.default_title

    # ---- 导出 ----

    def export(self, chat: Union[Chat, str], fmt: str = "json") -> str:
        if isinstance(chat, str):
            chat = self.require(chat)
        if fmt == "json":
            return json.dumps(chat.to_dict(), indent=2, ensure_ascii=False)
        if fmt == "markdown":
            out = f"# {chat.title}\n\n"
            out += f"Created: {_format_date(chat.created_at)}\n"
            out += f"Updated: {_format_date(chat.updated_at)}\n\n"
            out += "---\n\n"
            for m in chat.messages:
                if m.role == "system":
                    continue
                label = "👤 User" if m.role == "user" else "🤖 Assistant"
                out += f"### {label}\n\n{m.content}\n\n"
            return out
        if fmt == "text":
            out = f"{chat.title}\n"
            out += f"Created: {_format_date(chat.created_at)}\n"
            out += f"Updated: {_format_date(chat.updated_at)}\n\n"
            out += "=" * 50 + "\n\n"
            for m in chat.messages:
                if m.role == "system":
                    continue
                label = "User" if m.role == "user" else "Assistant"
                out += f"{label}:\n{m.content}\n\n" + "-" * 50 + "\n\n"
            return out
        return json.dumps(chat.to_dict(), ensure_ascii=False)

    # ---- 辅助方法 ----

    def _build(self, data: Dict[str, Any]) -> Chat:
        return Chat.from_dict(
            data,
            default_title=self.default_title,
            default_temperature=self._settings.default_temperature,
        )

    @staticmethod
    def _next_timestamp(chat: Chat) -> int:
        # 同一毫秒内连续追加时顺延 1ms，保证 timestamp 唯一
        latest = max((m.timestamp for m in chat.messages), default=-1)
        return max(now_ms(), latest + 1)

    def _touch_and_save(self, chat: Chat) -> None:
        chat.updated_at = now_ms()
        self._save(chat)

    def _save(self, chat: Chat) -> None:
        self._store.put(STORE_CHATS, chat.to_dict())
