"""对外 API 服务模块。

ChatService 把各个组件串成完整的对话流程：

ChatManager 组装消息 -> ProviderRegistry 解析目标 Provider 并发起流式请求
-> 每个增量拼接到进行中的助手消息 -> 流结束后持久化最终消息。
"""

from typing import Any, Dict, Iterator, List, Optional

from chat_core.config.settings import settings
from chat_core.domain.store import PersistencePort
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import JsonStore
from chat_core.providers.registry import ProviderRegistry
from chat_core.services.chat_manager import ChatManager
from chat_core.services.project_manager import ProjectManager


class ChatService:
    def __init__(self, store: PersistencePort, cfg=settings):
        self.store = store
        self.providers = ProviderRegistry(store, cfg)
        self.chats = ChatManager(store, cfg)
        self.projects = ProjectManager(store)

    def init(self) -> "ChatService":
        self.providers.init()
        self.projects.init()
        self.chats.init()
        return self

    def send_message(
        self,
        content: str,
        chat_id: Optional[str] = None,
        model_ref: Optional[str] = None,
        **options: Any,
    ) -> Iterator[str]:
        """发送一条用户消息并流式返回助手回复的增量文本。

        Args:
            content: 用户输入内容
            chat_id: 会话ID（可选，不提供则使用当前会话）
            model_ref: providerId/modelId 或裸模型 id（可选，默认使用激活 Provider 的默认模型）
            options: 透传给 Provider 的参数（temperature、max_tokens 等）

        Raises:
            各种 domain.exceptions 中定义的异常；Provider 校验失败在调用时立即抛出。
        """

        chat = self.chats.require(chat_id) if chat_id else self.chats.current_chat()
        if chat is None:
            chat = self.chats.create_chat()
        self.chats.add_message(chat.id, "user", content)
        options.setdefault("temperature", chat.temperature)
        target = self.providers.resolve_target(model_ref)
        deltas = self.providers.stream_to(target, chat.messages_for_api(), **options)
        return self._relay(chat.id, deltas, provider=target.provider.id, model=target.model_id)

    def _relay(self, chat_id: str, deltas: Iterator[str], **meta: Any) -> Iterator[str]:
        # 助手占位消息在开始迭代时才创建，未消费的迭代器不会留下空消息
        timestamp = self.chats.add_message(chat_id, "assistant", "", **meta).timestamp
        completed = False
        try:
            for delta in deltas:
                self.chats.append_delta(chat_id, timestamp, delta)
                yield delta
            completed = True
        except Exception as e:
            logger.error(f"Chat stream failed: {e}", extra={"extra": {"chat_id": chat_id, "error": str(e)}})
            raise
        finally:
            close = getattr(deltas, "close", None)
            if close is not None:
                close()
            # 流进行中会话可能已被删除（例如级联删除项目），此时无需修复占位消息
            chat = self.chats.get(chat_id)
            reply = chat.find_message(timestamp) if chat is not None else None
            if reply is not None and not completed and not reply.content:
                self.chats.delete_message(chat_id, timestamp)
            elif reply is not None:
                if not completed:
                    reply.meta["interrupted"] = True
                self.chats.save(chat_id)

    def list_chats(self) -> List[Dict[str, Any]]:
        """列出所有会话摘要，按更新时间倒序。"""
        return [
            {
                "id": c.id,
                "title": c.title,
                "project_id": c.project_id if c.project_id in self.projects.projects else None,
                "message_count": c.message_count(),
                "created_at": c.created_at,
                "updated_at": c.updated_at,
            }
            for c in self.chats.all_chats()
        ]


_service: Optional[ChatService] = None


def get_default_service() -> ChatService:
    """获取基于 JsonStore 的默认服务实例（单例）。"""
    global _service
    if _service is None:
        _service = ChatService(JsonStore(root=settings.storage_root)).init()
    return _service
