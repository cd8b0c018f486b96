"""Provider 注册表与请求分发。

ProviderRegistry 持有全部 ProviderConfig（id -> config）以及“当前激活”的 Provider，
并负责把一次对话请求分发到具体厂商：

1. 解析模型引用（providerId/modelId）。
2. 通过 translator 构造请求体、端点与请求头。
3. 使用 httpx 发起流式 POST，并把响应字节流交给 StreamDecoder。

所有修改都通过本类的方法完成，同时写入持久化端口。
"""

import copy
import dataclasses
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, NamedTuple, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, NetworkError, NotFoundError, ValidationError
from chat_core.domain.models import REQUEST_FORMATS, ModelInfo, ProviderConfig, now_ms
from chat_core.domain.store import SETTING_ACTIVE_PROVIDER, STORE_PROVIDERS, PersistencePort
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import translator
from chat_core.providers.catalog import DEFAULT_PROVIDERS
from chat_core.providers.stream import StreamDecoder

UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "base_url",
        "api_key",
        "api_key_required",
        "enabled",
        "models",
        "default_model",
        "headers",
        "request_format",
        "color",
        "transform",
    }
)


class ResolvedModel(NamedTuple):
    provider: Optional[ProviderConfig]
    model_id: str


class ProviderRegistry:
    """管理 ProviderConfig 集合与激活选择。"""

    def __init__(self, store: PersistencePort, cfg=settings):
        self._store = store
        self._settings = cfg
        self.providers: Dict[str, ProviderConfig] = {}
        self.active_provider_id: Optional[str] = None

    # ---- 加载 ----

    def init(self) -> None:
        """从存储加载配置；为空时播种内置目录，并确定激活的 Provider。"""

        self.providers.clear()
        saved = self._store.get_all(STORE_PROVIDERS)
        if not saved:
            for data in DEFAULT_PROVIDERS:
                provider = ProviderConfig.from_dict(copy.deepcopy(data))
                self.providers[provider.id] = provider
                self._store.put(STORE_PROVIDERS, provider.to_dict())
            logger.info("Seeded default providers", extra={"extra": {"count": len(self.providers)}})
        else:
            for data in saved:
                provider = ProviderConfig.from_dict(data)
                self.providers[provider.id] = provider

        stored_active = self._store.get_setting(SETTING_ACTIVE_PROVIDER)
        # 指向未知或已禁用 Provider 的记录视为未设置
        stored = self.providers.get(stored_active) if stored_active else None
        self.active_provider_id = stored.id if stored is not None and stored.enabled else None
        if self.active_provider_id is None:
            first = self._first_enabled()
            if first is not None:
                self.active_provider_id = first.id
                self._store.set_setting(SETTING_ACTIVE_PROVIDER, first.id)
            elif stored_active is not None:
                self._store.set_setting(SETTING_ACTIVE_PROVIDER, None)

    # ---- 查询 ----

    def get(self, provider_id: str) -> Optional[ProviderConfig]:
        return self.providers.get(provider_id)

    def require(self, provider_id: str) -> ProviderConfig:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise NotFoundError(code="PROVIDER_NOT_FOUND", message=f"Provider not found: {provider_id}")
        return provider

    def all_providers(self) -> List[ProviderConfig]:
        return list(self.providers.values())

    def enabled_providers(self) -> List[ProviderConfig]:
        return [p for p in self.providers.values() if p.enabled]

    def active_provider(self) -> Optional[ProviderConfig]:
        if self.active_provider_id is None:
            return None
        return self.providers.get(self.active_provider_id)

    def all_models(self) -> List[Dict[str, Any]]:
        """展开所有已启用 Provider 的模型，保持 Provider 顺序与模型顺序。"""

        models: List[Dict[str, Any]] = []
        for provider in self.enabled_providers():
            for model in provider.models:
                models.append(
                    {
                        **model.to_dict(),
                        "provider_id": provider.id,
                        "provider_name": provider.name,
                        "provider_color": provider.color,
                        "full_id": f"{provider.id}/{model.id}",
                    }
                )
        return models

    def resolve_model_ref(self, full_id: str) -> ResolvedModel:
        """解析 providerId/modelId。

        只按第一个 "/" 切分，模型 id 本身可以包含 "/"（如 OpenRouter）；
        没有 "/" 时视为当前激活 Provider 下的模型 id。
        """

        if "/" not in full_id:
            return ResolvedModel(self.active_provider(), full_id)
        provider_id, model_id = full_id.split("/", 1)
        return ResolvedModel(self.providers.get(provider_id), model_id)

    # ---- 修改 ----

    def set_active(self, provider_id: str) -> None:
        """激活的 Provider 必须处于启用状态。"""
        if not self.require(provider_id).enabled:
            raise ValidationError([f"Provider {provider_id!r} is disabled"], provider=provider_id)
        self.active_provider_id = provider_id
        self._store.set_setting(SETTING_ACTIVE_PROVIDER, provider_id)

    def add(self, data: Dict[str, Any]) -> ProviderConfig:
        """新增 Provider；校验失败时在任何修改与持久化之前抛出 ValidationError。"""

        provider = ProviderConfig.from_dict(dict(data))
        errors = translator.validate(provider)
        if errors:
            raise ValidationError(errors, message=f"Provider validation failed: {', '.join(errors)}")
        if provider.id in self.providers:
            raise ValidationError([f"Provider id {provider.id!r} already exists"])
        self.providers[provider.id] = provider
        self._store.put(STORE_PROVIDERS, provider.to_dict())
        return provider

    def update(self, provider_id: str, **changes: Any) -> ProviderConfig:
        """按字段更新 Provider，刷新 updated_at 并重新检查不变量。"""

        current = self.require(provider_id)
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError([f"Unknown provider field {k!r}" for k in unknown])

        if "models" in changes:
            changes["models"] = [m if isinstance(m, ModelInfo) else ModelInfo.from_dict(m) for m in changes["models"]]
        if "headers" in changes:
            changes["headers"] = dict(changes["headers"] or {})
        candidate = dataclasses.replace(current, **changes)
        if "models" in changes and "default_model" not in changes and candidate.default_model not in candidate.model_ids():
            candidate.default_model = candidate.models[0].id if candidate.models else ""

        errors = self._invariant_errors(candidate)
        if errors:
            raise ValidationError(errors)

        candidate.updated_at = now_ms()
        self.providers[provider_id] = candidate
        self._store.put(STORE_PROVIDERS, candidate.to_dict())
        if provider_id == self.active_provider_id and not candidate.enabled:
            self._reselect_active()
        elif self.active_provider_id is None and candidate.enabled:
            self._reselect_active()
        return candidate

    def delete(self, provider_id: str) -> None:
        self.require(provider_id)
        del self.providers[provider_id]
        self._store.delete(STORE_PROVIDERS, provider_id)
        if self.active_provider_id == provider_id:
            self._reselect_active()

    def add_model(self, provider_id: str, model_id: str, name: str, context_window: int = 4096) -> ModelInfo:
        provider = self.require(provider_id)
        try:
            model = provider.add_model(model_id, name, context_window)
        except ValueError as e:
            raise ValidationError([str(e)])
        self._store.put(STORE_PROVIDERS, provider.to_dict())
        return model

    def remove_model(self, provider_id: str, model_id: str) -> None:
        provider = self.require(provider_id)
        provider.remove_model(model_id)
        self._store.put(STORE_PROVIDERS, provider.to_dict())

    def update_model(self, provider_id: str, model_id: str, name: Optional[str] = None, context_window: Optional[int] = None) -> None:
        provider = self.require(provider_id)
        provider.update_model(model_id, name=name, context_window=context_window)
        self._store.put(STORE_PROVIDERS, provider.to_dict())

    # ---- 请求分发 ----

    def resolve_target(self, model_ref: Optional[str] = None) -> ResolvedModel:
        """解析一次请求的目标 Provider 与最终模型 id（缺省为该 Provider 的默认模型）。"""

        if model_ref:
            provider, model_id = self.resolve_model_ref(model_ref)
        else:
            provider, model_id = self.active_provider(), ""
        if provider is None:
            raise NotFoundError(code="PROVIDER_NOT_FOUND", message=f"No provider for model {model_ref!r}")
        return ResolvedModel(provider, model_id or provider.default_model)

    def stream_chat(self, messages: List[Dict[str, Any]], model_ref: Optional[str] = None, **options: Any) -> Iterator[str]:
        """向目标 Provider 发起流式对话，返回增量文本迭代器。

        目标解析与配置校验在调用时立即完成；HTTP 请求在开始迭代时才发出。
        """

        return self.stream_to(self.resolve_target(model_ref), messages, **options)

    def stream_to(self, target: ResolvedModel, messages: List[Dict[str, Any]], **options: Any) -> Iterator[str]:
        """向已解析的目标发起流式对话。"""

        provider = target.provider
        errors = translator.validate(provider)
        if errors:
            raise ValidationError(errors, message=f"Provider validation failed: {', '.join(errors)}", provider=provider.id)
        return self._stream(provider, messages, target.model_id, options)

    def complete(self, messages: List[Dict[str, Any]], model_ref: Optional[str] = None, **options: Any) -> str:
        """非增量调用：消费完整个流后返回拼接文本。"""

        return "".join(self.stream_chat(messages, model_ref, **options))

    @contextmanager
    def send_request(
        self,
        provider: ProviderConfig,
        messages: List[Dict[str, Any]],
        model: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Iterator[httpx.Response]:
        """发起流式 POST，产出已校验状态码的响应；退出 with 块时释放连接。

        Raises:
            ApiError: 非 2xx 响应（携带状态码与响应体）
        """

        transform = translator.resolve_transform(provider)
        endpoint = translator.build_endpoint(provider.base_url, model, provider.api_key, provider.request_format)
        headers = translator.build_headers(provider)
        body = translator.build_request_body(
            messages,
            model,
            options,
            provider.request_format,
            transform,
            default_max_tokens=self._settings.default_max_tokens,
        )
        logger.info(
            "Provider request",
            extra={"extra": {"provider": provider.id, "model": model, "format": provider.request_format}},
        )
        with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
            with client.stream("POST", endpoint, json=body, headers=headers) as resp:
                if not 200 <= resp.status_code < 300:
                    resp.read()
                    logger.error(
                        "Provider request failed",
                        extra={"extra": {"provider": provider.id, "status": resp.status_code}},
                    )
                    raise ApiError(http_status=resp.status_code, body=resp.text, provider=provider.id)
                yield resp

    def _stream(self, provider: ProviderConfig, messages: List[Dict[str, Any]], model: str, options: Dict[str, Any]) -> Iterator[str]:
        transform = translator.resolve_transform(provider)
        try:
            with self.send_request(provider, messages, model, options) as resp:
                with StreamDecoder(resp.iter_bytes(), provider.request_format, transform) as deltas:
                    yield from deltas
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=provider.id)

    # ---- 辅助方法 ----

    def _first_enabled(self) -> Optional[ProviderConfig]:
        for provider in self.providers.values():
            if provider.enabled:
                return provider
        return None

    def _reselect_active(self) -> None:
        first = self._first_enabled()
        self.active_provider_id = first.id if first else None
        self._store.set_setting(SETTING_ACTIVE_PROVIDER, self.active_provider_id)

    @staticmethod
    def _invariant_errors(provider: ProviderConfig) -> List[str]:
        errors: List[str] = []
        if provider.default_model and provider.default_model not in provider.model_ids():
            errors.append(f"Default model {provider.default_model!r} is not in the model list")
        if provider.request_format not in REQUEST_FORMATS:
            errors.append(f"Unknown request format {provider.request_format!r}")
        if provider.enabled and not provider.models:
            errors.append("At least one model is required")
        return errors
