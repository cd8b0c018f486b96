"""LLM Provider 集成层。

该包下的模块负责：
- 定义请求体/端点/请求头的格式转换 (translator)。
- 解析各厂商的 SSE 流式响应 (stream)。
- 内置 Provider 目录 (catalog)。
- 管理 Provider 配置、激活选择与请求分发 (registry)。
"""

from chat_core.providers.registry import ProviderRegistry, ResolvedModel
from chat_core.providers.stream import StreamDecoder, decode_stream
from chat_core.providers.translator import CustomTransform, register_transform, unregister_transform

__all__ = [
    "CustomTransform",
    "ProviderRegistry",
    "ResolvedModel",
    "StreamDecoder",
    "decode_stream",
    "register_transform",
    "unregister_transform",
]
