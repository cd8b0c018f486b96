from chat_core.domain.models import Chat, Message, ProviderConfig


def test_message_from_dict_collects_flat_metadata():
    msg = Message.from_dict({"role": "assistant", "content": "x", "timestamp": 5, "model": "m"})
    assert msg.meta == {"model": "m"}
    assert Message.from_dict(msg.to_dict()) == msg


def test_chat_defaults():
    chat = Chat.from_dict({})
    assert chat.id.startswith("chat_")
    assert chat.title == "New Chat"
    assert chat.temperature == 0.7
    assert chat.project_id is None
    assert Chat.from_dict({"temperature": 0}).temperature == 0.0


def test_provider_defaults_and_model_editing():
    provider = ProviderConfig.from_dict({"name": "P", "base_url": "u"})
    assert provider.id.startswith("provider_")
    assert provider.api_key_required is True
    assert provider.enabled is False
    assert provider.headers == {"Content-Type": "application/json"}
    assert provider.default_model == ""
    provider.add_model("a", "A")
    assert provider.default_model == "a"
    assert provider.get_model("a").context_window == 4096
    provider.remove_model("a")
    assert provider.default_model == ""
    assert ProviderConfig.from_dict(provider.to_dict()).to_dict() == provider.to_dict()
