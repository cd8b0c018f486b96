from chat_core.domain.models import ProviderConfig
from chat_core.providers import translator
from chat_core.providers.translator import (
    build_endpoint,
    build_headers,
    build_request_body,
    register_transform,
    unregister_transform,
    validate,
)

MESSAGES = [
    {"role": "system", "content": "be brief"},
    {"role": "user", "content": "hi"},
    {"role": "assistant", "content": "hello"},
    {"role": "system", "content": "second system"},
    {"role": "user", "content": "bye"},
]


def _provider(**kw):
    data = {
        "id": "p1",
        "name": "P1",
        "base_url": "https://api.example.com/v1",
        "api_key": "sk-test",
        "models": [{"id": "m1", "name": "M1"}],
    }
    data.update(kw)
    return ProviderConfig.from_dict(data)


def test_openai_body_passes_messages_and_options():
    body = build_request_body(MESSAGES[1:3], "gpt-4o", {"temperature": 0.2}, "openai")
    assert body == {
        "model": "gpt-4o",
        "stream": True,
        "temperature": 0.2,
        "messages": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
    }


def test_openai_body_respects_stream_option():
    body = build_request_body(MESSAGES[1:2], "gpt-4o", {"stream": False}, "openai")
    assert body["stream"] is False


def test_anthropic_body_hoists_first_system_message():
    body = build_request_body(MESSAGES, "claude", {"temperature": 0.5}, "anthropic")
    assert body == {
        "model": "claude",
        "messages": [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "bye"},
        ],
        "system": "be brief",
        "max_tokens": 4096,
        "stream": True,
    }


def test_anthropic_body_without_system_and_explicit_max_tokens():
    body = build_request_body(MESSAGES[1:2], "claude", {"max_tokens": 100}, "anthropic")
    assert "system" not in body
    assert body["max_tokens"] == 100


def test_google_body_keeps_system_as_user_turn():
    body = build_request_body(MESSAGES[:3], "gemini", {"temperature": 0.3, "max_tokens": 256}, "google")
    assert body == {
        "contents": [
            {"role": "user", "parts": [{"text": "be brief"}]},
            {"role": "user", "parts": [{"text": "hi"}]},
            {"role": "model", "parts": [{"text": "hello"}]},
        ],
        "generationConfig": {"temperature": 0.3, "maxOutputTokens": 256},
    }


def test_custom_body_uses_registered_transform():
    def to_prompt(messages, model, options):
        return {"engine": model, "prompt": "\n".join(m["content"] for m in messages)}

    transform = register_transform("prompt-style", request=to_prompt)
    try:
        body = build_request_body(MESSAGES[1:3], "m", {}, "custom", transform)
        assert body == {"engine": "m", "prompt": "hi\nhello"}
        assert translator.resolve_transform(_provider(request_format="custom", transform="prompt-style")) is transform
    finally:
        unregister_transform("prompt-style")


def test_custom_body_without_transform_falls_back_to_openai():
    body = build_request_body(MESSAGES[1:2], "m", {}, "custom")
    assert body == {"model": "m", "stream": True, "messages": [{"role": "user", "content": "hi"}]}


def test_endpoints():
    base = "https://api.example.com/v1"
    assert build_endpoint(base, "m", "k", "openai") == f"{base}/chat/completions"
    assert build_endpoint(base, "m", "k", "anthropic") == f"{base}/chat/completions"
    assert build_endpoint(base, "m", "k", "custom") == f"{base}/chat/completions"
    assert build_endpoint(base, "gemini-pro", "k", "google") == f"{base}/models/gemini-pro:streamGenerateContent?key=k"


def test_headers_per_format():
    assert build_headers(_provider())["Authorization"] == "Bearer sk-test"
    anthropic = build_headers(_provider(request_format="anthropic"))
    assert anthropic["x-api-key"] == "sk-test"
    assert "Authorization" not in anthropic
    google = build_headers(_provider(request_format="google"))
    assert google == {"Content-Type": "application/json"}


def test_headers_do_not_mutate_config():
    provider = _provider()
    build_headers(provider)
    assert "Authorization" not in provider.headers


def test_validate_reports_all_errors():
    provider = _provider(name="", base_url="", models=[], api_key_required=False)
    errors = validate(provider)
    assert errors == [
        "Provider name is required",
        "Base URL is required",
        "At least one model is required",
    ]


def test_validate_missing_api_key_and_bad_default_model():
    provider = _provider(api_key="", default_model="nope")
    errors = validate(provider)
    assert "API key is required for this provider" in errors
    assert any("nope" in e for e in errors)
    assert validate(_provider()) == []
