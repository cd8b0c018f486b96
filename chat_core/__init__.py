"""Chat Core 顶层包。

该包提供多厂商 LLM 对话客户端的核心实现，
包括配置加载、领域模型、Provider 请求/流式解析、
会话（Chat）与项目（Project）管理以及持久化存储等能力。
"""

from chat_core.api.service import ChatService

__all__ = ["ChatService"]
