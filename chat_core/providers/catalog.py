"""内置 Provider 目录。

首次启动（存储中没有任何 Provider）时，ProviderRegistry 会用这里的配置播种，
全部默认为禁用状态，用户填写 API key 并启用后才会参与模型选择。
"""

from typing import Any, Dict, List, Tuple


def _models(*items: Tuple[str, str, int]) -> List[Dict[str, Any]]:
    return [{"id": mid, "name": name, "context_window": ctx} for mid, name, ctx in items]


OPENAI = {
    "id": "openai",
    "name": "OpenAI",
    "base_url": "https://api.openai.com/v1",
    "models": _models(
        ("gpt-4o", "GPT-4o", 128000),
        ("gpt-4o-mini", "GPT-4o Mini", 128000),
        ("gpt-4-turbo", "GPT-4 Turbo", 128000),
        ("gpt-3.5-turbo", "GPT-3.5 Turbo", 16385),
    ),
    "default_model": "gpt-4o-mini",
    "request_format": "openai",
    "color": "#10a37f",
}

ANTHROPIC = {
    "id": "anthropic",
    "name": "Anthropic (Claude)",
    "base_url": "https://api.anthropic.com/v1",
    "models": _models(
        ("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", 200000),
        ("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", 200000),
        ("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", 200000),
        ("claude-3-opus-20240229", "Claude 3 Opus", 200000),
    ),
    "default_model": "claude-sonnet-4-5-20250929",
    "headers": {"Content-Type": "application/json", "anthropic-version": "2023-06-01"},
    "request_format": "anthropic",
    "color": "#d97757",
}

GOOGLE = {
    "id": "google",
    "name": "Google (Gemini)",
    "base_url": "https://generativelanguage.googleapis.com/v1beta",
    "models": _models(
        ("gemini-2.0-flash-exp", "Gemini 2.0 Flash Experimental", 1000000),
        ("gemini-1.5-pro-latest", "Gemini 1.5 Pro", 2000000),
        ("gemini-1.5-flash-latest", "Gemini 1.5 Flash", 1000000),
    ),
    "default_model": "gemini-2.0-flash-exp",
    "request_format": "google",
    "color": "#4285f4",
}

DEEPSEEK = {
    "id": "deepseek",
    "name": "DeepSeek",
    "base_url": "https://api.deepseek.com/v1",
    "models": _models(
        ("deepseek-chat", "DeepSeek Chat", 32768),
        ("deepseek-coder", "DeepSeek Coder", 16384),
    ),
    "default_model": "deepseek-chat",
    "request_format": "openai",
    "color": "#00d4aa",
}

GROQ = {
    "id": "groq",
    "name": "Groq",
    "base_url": "https://api.groq.com/openai/v1",
    "models": _models(
        ("llama-3.3-70b-versatile", "Llama 3.3 70B", 128000),
        ("llama-3.1-8b-instant", "Llama 3.1 8B", 128000),
        ("mixtral-8x7b-32768", "Mixtral 8x7B", 32768),
    ),
    "default_model": "llama-3.3-70b-versatile",
    "request_format": "openai",
    "color": "#f55036",
}

OPENROUTER = {
    "id": "openrouter",
    "name": "OpenRouter",
    "base_url": "https://openrouter.ai/api/v1",
    "models": _models(
        ("anthropic/claude-sonnet-4-5", "Claude Sonnet 4.5", 200000),
        ("openai/gpt-4o", "GPT-4o", 128000),
        ("meta-llama/llama-3.3-70b-instruct", "Llama 3.3 70B", 128000),
        ("deepseek/deepseek-chat", "DeepSeek Chat", 32768),
    ),
    "default_model": "anthropic/claude-sonnet-4-5",
    "headers": {"Content-Type": "application/json", "X-Title": "Chat Core"},
    "request_format": "openai",
    "color": "#7c3aed",
}

MISTRAL = {
    "id": "mistral",
    "name": "Mistral AI",
    "base_url": "https://api.mistral.ai/v1",
    "models": _models(
        ("mistral-large-latest", "Mistral Large", 128000),
        ("mistral-small-latest", "Mistral Small", 32000),
    ),
    "default_model": "mistral-large-latest",
    "request_format": "openai",
    "color": "#ff7000",
}

PERPLEXITY = {
    "id": "perplexity",
    "name": "Perplexity",
    "base_url": "https://api.perplexity.ai",
    "models": _models(
        ("llama-3.1-sonar-large-128k-online", "Sonar Large Online", 127072),
        ("llama-3.1-sonar-small-128k-chat", "Sonar Small Chat", 127072),
    ),
    "default_model": "llama-3.1-sonar-large-128k-online",
    "request_format": "openai",
    "color": "#20808d",
}


DEFAULT_PROVIDERS: List[Dict[str, Any]] = [
    OPENAI,
    ANTHROPIC,
    GOOGLE,
    DEEPSEEK,
    GROQ,
    OPENROUTER,
    MISTRAL,
    PERPLEXITY,
]
