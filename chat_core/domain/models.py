"""统一的对话实体与 Provider 配置数据模型。

本模块定义了客户端内部在不同 Provider 之间共享的标准数据结构：

- Message: 一条对话消息（system/user/assistant），以 timestamp 作为身份键。
- Chat: 一个会话，包含有序消息列表与可选的项目归属。
- Project: 一组相关会话的分组。
- ProviderConfig / ModelInfo: 单个厂商端点及其模型列表的描述。

实体只应通过各 Manager 的方法修改，以保证 updated_at 及派生不变量正确。
存储时统一使用 to_dict()/from_dict() 与纯 dict 互转。
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

# 消息角色（与 OpenAI 等厂商的 role 字段对应）
Role = Literal["system", "user", "assistant"]

# Provider 线上协议格式
RequestFormat = Literal["openai", "anthropic", "google", "custom"]

REQUEST_FORMATS = ("openai", "anthropic", "google", "custom")

DEFAULT_COLOR = "#6366f1"
DEFAULT_HEADERS = {"Content-Type": "application/json"}


def now_ms() -> int:
    """当前时间（epoch 毫秒）。"""
    return int(time.time() * 1000)


def generate_id(prefix: str) -> str:
    return f"{prefix}_{now_ms()}_{uuid4().hex[:9]}"


@dataclass
class Message:
    """一条对话消息。

    - timestamp: 毫秒时间戳，在同一 Chat 内唯一且单调不减，是消息的身份键。
    - meta: 附加元数据（模型、provider、耗时等），不发给 Provider。
    """

    role: Role
    content: str
    timestamp: int
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        known = {"role", "content", "timestamp", "meta"}
        meta = dict(data.get("meta") or {})
        # 兼容把元数据平铺在消息上的旧记录
        meta.update({k: v for k, v in data.items() if k not in known})
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            timestamp=int(data["timestamp"]),
            meta=meta,
        )


@dataclass
class Chat:
    """一个会话。

    project_id 是对 Project 的软引用：指向已删除的项目时按“无项目”处理。
    """

    id: str
    title: str
    messages: List[Message] = field(default_factory=list)
    project_id: Optional[str] = None
    system_prompt: str = ""
    temperature: float = 0.7
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def messages_for_api(self) -> List[Dict[str, str]]:
        """生成发给 Provider 的消息列表（只保留 role/content）。

        存在 system_prompt 时，将其作为第一条 system 消息，并丢弃已存储的 system 消息。
        """
        messages: List[Dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
            messages.extend(
                {"role": m.role, "content": m.content} for m in self.messages if m.role != "system"
            )
        else:
            messages.extend({"role": m.role, "content": m.content} for m in self.messages)
        return messages

    def message_count(self, role: Optional[Role] = None) -> int:
        if role:
            return sum(1 for m in self.messages if m.role == role)
        return len(self.messages)

    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def find_message(self, timestamp: int) -> Optional[Message]:
        for m in self.messages:
            if m.timestamp == timestamp:
                return m
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "project_id": self.project_id,
            "system_prompt": self.system_prompt,
            "temperature": self.temperature,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_title: str = "New Chat", default_temperature: float = 0.7) -> "Chat":
        now = now_ms()
        temperature = data.get("temperature")
        return cls(
            id=data.get("id") or generate_id("chat"),
            title=data.get("title") or default_title,
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            project_id=data.get("project_id") or None,
            system_prompt=data.get("system_prompt") or "",
            temperature=default_temperature if temperature is None else float(temperature),
            created_at=int(data.get("created_at") or now),
            updated_at=int(data.get("updated_at") or now),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Project:
    """一组相关会话的分组。"""

    id: str
    name: str
    description: str = ""
    color: str = DEFAULT_COLOR
    icon: str = "📁"
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        now = now_ms()
        return cls(
            id=data.get("id") or generate_id("project"),
            name=data.get("name") or "New Project",
            description=data.get("description") or "",
            color=data.get("color") or DEFAULT_COLOR,
            icon=data.get("icon") or "📁",
            created_at=int(data.get("created_at") or now),
            updated_at=int(data.get("updated_at") or now),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ModelInfo:
    """Provider 下的单个模型。"""

    id: str
    name: str
    context_window: int = 4096

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "context_window": self.context_window}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelInfo":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            context_window=int(data.get("context_window") or 4096),
        )


@dataclass
class ProviderConfig:
    """某个 Provider 端点的完整配置。

    - request_format: 线上协议格式，决定请求体/端点/鉴权头/流式帧的解析方式。
    - transform: request_format 为 custom 时，指向已注册自定义转换的名称；
      只持久化名称，不持久化可执行代码。
    """

    id: str
    name: str
    base_url: str
    api_key: str = ""
    api_key_required: bool = True
    enabled: bool = False
    models: List[ModelInfo] = field(default_factory=list)
    default_model: str = ""
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    request_format: RequestFormat = "openai"
    color: str = DEFAULT_COLOR
    transform: Optional[str] = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def model_ids(self) -> List[str]:
        return [m.id for m in self.models]

    def get_model(self, model_id: str) -> Optional[ModelInfo]:
        for m in self.models:
            if m.id == model_id:
                return m
        return None

    def add_model(self, model_id: str, name: str, context_window: int = 4096) -> ModelInfo:
        if not model_id or not name:
            raise ValueError("Model must have an id and name")
        model = ModelInfo(id=model_id, name=name, context_window=context_window or 4096)
        self.models.append(model)
        if len(self.models) == 1:
            self.default_model = model.id
        self.updated_at = now_ms()
        return model

    def remove_model(self, model_id: str) -> None:
        self.models = [m for m in self.models if m.id != model_id]
        if self.default_model == model_id:
            self.default_model = self.models[0].id if self.models else ""
        self.updated_at = now_ms()

    def update_model(self, model_id: str, name: Optional[str] = None, context_window: Optional[int] = None) -> None:
        model = self.get_model(model_id)
        if model is None:
            return
        if name is not None:
            model.name = name
        if context_window is not None:
            model.context_window = context_window
        self.updated_at = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "base_url": self.base_url,
            "api_key": self.api_key,
            "api_key_required": self.api_key_required,
            "enabled": self.enabled,
            "models": [m.to_dict() for m in self.models],
            "default_model": self.default_model,
            "headers": dict(self.headers),
            "request_format": self.request_format,
            "color": self.color,
            "transform": self.transform,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        now = now_ms()
        models = [m if isinstance(m, ModelInfo) else ModelInfo.from_dict(m) for m in data.get("models") or []]
        api_key_required = data.get("api_key_required")
        headers = data.get("headers")
        return cls(
            id=data.get("id") or generate_id("provider"),
            name=data.get("name", "Custom Provider") or "",
            base_url=data.get("base_url") or "",
            api_key=data.get("api_key") or "",
            api_key_required=True if api_key_required is None else bool(api_key_required),
            enabled=bool(data.get("enabled", False)),
            models=models,
            default_model=data.get("default_model") or (models[0].id if models else ""),
            headers=dict(DEFAULT_HEADERS) if headers is None else dict(headers),
            request_format=data.get("request_format") or "openai",
            color=data.get("color") or DEFAULT_COLOR,
            transform=data.get("transform"),
            created_at=int(data.get("created_at") or now),
            updated_at=int(data.get("updated_at") or now),
        )
