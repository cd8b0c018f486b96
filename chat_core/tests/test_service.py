import json

import pytest

from chat_core.api.service import ChatService
from chat_core.domain.exceptions import ApiError, ValidationError
from chat_core.domain.store import STORE_CHATS, STORE_PROVIDERS


def _chunk(text):
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}) + "\n\n"


@pytest.fixture
def service(store):
    store.put(STORE_PROVIDERS, {
        "id": "acme",
        "name": "Acme",
        "base_url": "https://acme.example.com/v1",
        "api_key": "sk-acme",
        "enabled": True,
        "models": [{"id": "fast", "name": "Fast"}, {"id": "smart", "name": "Smart"}],
    })
    return ChatService(store).init()


def test_send_message_streams_and_persists_reply(service, store, fake_http):
    fake_http["chunks"] = [_chunk("Hi"), _chunk(" there"), "data: [DONE]\n"]
    chat_id = service.chats.current_chat_id

    deltas = list(service.send_message("Hello assistant"))

    assert deltas == ["Hi", " there"]
    stored = store.get(STORE_CHATS, chat_id)
    assert stored["title"] == "Hello assistant"
    assert [m["role"] for m in stored["messages"]] == ["user", "assistant"]
    reply = stored["messages"][1]
    assert reply["content"] == "Hi there"
    assert reply["meta"] == {"provider": "acme", "model": "fast"}
    body = fake_http["requests"][0]["json"]
    assert body["messages"] == [{"role": "user", "content": "Hello assistant"}]
    assert body["temperature"] == 0.7


def test_send_message_with_model_ref_and_system_prompt(service, fake_http):
    fake_http["chunks"] = [_chunk("ok")]
    chat = service.chats.create_chat(system_prompt="Be terse", temperature=0.1)
    assert list(service.send_message("q", chat_id=chat.id, model_ref="acme/smart")) == ["ok"]
    body = fake_http["requests"][0]["json"]
    assert body["model"] == "smart"
    assert body["temperature"] == 0.1
    assert body["messages"][0] == {"role": "system", "content": "Be terse"}
    assert chat.last_message().meta["model"] == "smart"


def test_api_error_removes_empty_placeholder(service, store, fake_http):
    fake_http["status_code"] = 500
    fake_http["body"] = "boom"
    chat_id = service.chats.current_chat_id
    with pytest.raises(ApiError):
        list(service.send_message("hello"))
    messages = store.get(STORE_CHATS, chat_id)["messages"]
    assert [m["role"] for m in messages] == ["user"]


def test_early_stop_keeps_partial_reply(service, store, fake_http):
    fake_http["chunks"] = [_chunk("part"), _chunk("ial"), _chunk(" never")]
    chat_id = service.chats.current_chat_id
    deltas = service.send_message("hello")
    assert next(deltas) == "part"
    deltas.close()
    assert fake_http["responses"][0].closed
    reply = store.get(STORE_CHATS, chat_id)["messages"][-1]
    assert reply["content"] == "part"
    assert reply["meta"]["interrupted"] is True


def test_unconsumed_stream_leaves_no_placeholder(service, fake_http):
    fake_http["chunks"] = [_chunk("x")]
    chat = service.chats.current_chat()
    service.send_message("hello")
    assert [m.role for m in chat.messages] == ["user"]


def test_invalid_provider_fails_before_streaming(service, fake_http):
    service.providers.update("acme", api_key="")
    with pytest.raises(ValidationError):
        service.send_message("hello")
    assert fake_http["requests"] == []


def test_list_chats_hides_dangling_project(service, store):
    project = service.projects.create_project(name="P")
    chat = service.chats.create_chat(project_id=project.id)
    orphan = service.chats.create_chat(project_id="gone")
    summaries = {c["id"]: c for c in service.list_chats()}
    assert summaries[chat.id]["project_id"] == project.id
    assert summaries[orphan.id]["project_id"] is None
    assert summaries[chat.id]["message_count"] == 0


def test_closing_stream_after_chat_deleted(service, fake_http):
    fake_http["chunks"] = [_chunk("a"), _chunk("b")]
    chat_id = service.chats.current_chat_id
    deltas = service.send_message("hello")
    assert next(deltas) == "a"
    service.chats.delete_chat(chat_id)
    deltas.close()
    assert fake_http["responses"][0].closed
    assert chat_id not in service.chats.chats


def test_reply_meta_matches_request_target(service, fake_http):
    fake_http["chunks"] = [_chunk("ok")]
    service.providers.set_active("acme")
    chat = service.chats.current_chat()
    list(service.send_message("q", model_ref="smart"))
    assert fake_http["requests"][0]["json"]["model"] == "smart"
    assert chat.last_message().meta == {"provider": "acme", "model": "smart"}
