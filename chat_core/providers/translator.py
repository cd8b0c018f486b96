"""Provider 请求转换层（纯函数，无 I/O）。

本模块负责把内部统一的消息列表映射为各厂商的线上格式：

1. build_request_body: 按 request_format 构造请求体。
2. build_endpoint: 拼接流式对话端点 URL。
3. build_headers: 在配置的 headers 基础上加入鉴权头。
4. validate: 检查 ProviderConfig，一次性返回全部错误。

custom 格式不持久化函数本身，而是通过 register_transform 注册的
“具名转换策略”在运行时解析（ProviderConfig.transform 只保存名称）。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from chat_core.domain.models import REQUEST_FORMATS, ProviderConfig

DEFAULT_MAX_TOKENS = 4096

RequestTransform = Callable[[List[Dict[str, Any]], str, Dict[str, Any]], Dict[str, Any]]
ResponseTransform = Callable[[Any], Optional[str]]


@dataclass(frozen=True)
class CustomTransform:
    """custom 格式的具名转换策略。

    - request: (messages, model, options) -> 请求体 dict。
    - response: 单条已解析的流式 JSON 记录 -> 增量文本（无内容时返回 None）。
    两者都可省略，省略时按 openai 格式处理。
    """

    name: str
    request: Optional[RequestTransform] = None
    response: Optional[ResponseTransform] = None


_TRANSFORMS: Dict[str, CustomTransform] = {}


def register_transform(
    name: str,
    request: Optional[RequestTransform] = None,
    response: Optional[ResponseTransform] = None,
) -> CustomTransform:
    """注册（或覆盖）一个具名转换策略。"""

    transform = CustomTransform(name=name, request=request, response=response)
    _TRANSFORMS[name] = transform
    return transform


def unregister_transform(name: str) -> None:
    _TRANSFORMS.pop(name, None)


def get_transform(name: Optional[str]) -> Optional[CustomTransform]:
    if not name:
        return None
    return _TRANSFORMS.get(name)


def resolve_transform(config: ProviderConfig) -> Optional[CustomTransform]:
    """只有 custom 格式才会使用转换策略。"""

    if config.request_format != "custom":
        return None
    return get_transform(config.transform)


def build_request_body(
    messages: List[Dict[str, Any]],
    model: str,
    options: Optional[Dict[str, Any]] = None,
    request_format: str = "openai",
    transform: Optional[CustomTransform] = None,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
) -> Dict[str, Any]:
    """根据 request_format 构造请求体。

    - openai/默认: {model, stream, **options, messages}。
    - anthropic: system 消息提升为顶层 system（多条时取第一条），其余消息组成 messages，
      max_tokens 缺省为 default_max_tokens。
    - google: 每条消息映射为 {role: model|user, parts: [{text}]}；system 消息不做提升，
      按 user 处理。temperature/max_tokens 进入 generationConfig。
    - custom: 交给注册的 request 转换；没有时退回 openai 结构。
    """

    opts = dict(options or {})
    msgs = [{"role": m["role"], "content": m["content"]} for m in messages]
    base: Dict[str, Any] = {"model": model, "stream": opts.get("stream", True)}
    base.update(opts)

    if request_format == "anthropic":
        system = [m for m in msgs if m["role"] == "system"]
        body: Dict[str, Any] = {
            "model": model,
            "messages": [m for m in msgs if m["role"] != "system"],
        }
        if system:
            body["system"] = system[0]["content"]
        body["max_tokens"] = opts.get("max_tokens") or default_max_tokens
        body["stream"] = base["stream"]
        return body

    if request_format == "google":
        generation_config = {}
        if opts.get("temperature") is not None:
            generation_config["temperature"] = opts["temperature"]
        if opts.get("max_tokens") is not None:
            generation_config["maxOutputTokens"] = opts["max_tokens"]
        return {
            "contents": [
                {
                    "role": "model" if m["role"] == "assistant" else "user",
                    "parts": [{"text": m["content"]}],
                }
                for m in msgs
            ],
            "generationConfig": generation_config,
        }

    if request_format == "custom" and transform is not None and transform.request is not None:
        return transform.request(msgs, model, opts)

    return {**base, "messages": msgs}


def build_endpoint(base_url: str, model: str, api_key: str, request_format: str) -> str:
    if request_format == "google":
        return f"{base_url}/models/{model}:streamGenerateContent?key={api_key}"
    return f"{base_url}/chat/completions"


def build_headers(config: ProviderConfig) -> Dict[str, str]:
    """复制配置中的 headers 并加入鉴权头；google 的 key 放在 URL 中，不进 header。"""

    headers = dict(config.headers)
    if config.api_key and config.request_format != "google":
        if config.request_format == "anthropic":
            headers["x-api-key"] = config.api_key
        else:
            headers["Authorization"] = f"Bearer {config.api_key}"
    return headers


def validate(config: ProviderConfig) -> List[str]:
    """校验 ProviderConfig，返回全部错误信息（不抛异常）。"""

    errors: List[str] = []
    if not config.name or not config.name.strip():
        errors.append("Provider name is required")
    if not config.base_url or not config.base_url.strip():
        errors.append("Base URL is required")
    if config.api_key_required and (not config.api_key or not config.api_key.strip()):
        errors.append("API key is required for this provider")
    if not config.models:
        errors.append("At least one model is required")
    elif config.default_model and config.default_model not in config.model_ids():
        errors.append(f"Default model {config.default_model!r} is not in the model list")
    if config.request_format not in REQUEST_FORMATS:
        errors.append(f"Unknown request format {config.request_format!r}")
    return errors
