import pytest

from ai_provider import CompletionProvider, SYSTEM_PROMPT
from service_config import Settings
from service_errors import AIProcessingError
from conftest import FakeResponse, FakeSession


def _chat_payload(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def test_key_precedence_generic_then_deepseek_then_openai():
    env = {"AI_API_KEY": "generic", "DEEPSEEK_API_KEY": "ds", "OPENAI_API_KEY": "oa"}
    assert Settings.from_env(env).ai_api_key == "generic"

    env.pop("AI_API_KEY")
    assert Settings.from_env(env).ai_api_key == "ds"

    env.pop("DEEPSEEK_API_KEY")
    assert Settings.from_env(env).ai_api_key == "oa"


def test_generate_sends_chat_request_and_returns_content_unmodified(settings):
    session = FakeSession(FakeResponse(200, _chat_payload("  Result with spacing \n")))
    provider = CompletionProvider(settings, session=session)

    text = provider.generate("Summarize the QI token model")

    assert text == "  Result with spacing \n"
    call = session.calls[0]
    assert call["url"] == settings.ai_api_url
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    body = call["json"]
    assert body["model"] == "deepseek-chat"
    assert body["max_tokens"] == 1500
    assert body["temperature"] == 0.7
    assert body["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert body["messages"][1]["role"] == "user"
    assert "Summarize the QI token model" in body["messages"][1]["content"]


def test_header_auth_style_and_extra_headers(settings):
    settings.ai_auth_style = "header"
    settings.ai_extra_headers = {"anthropic-version": "2023-06-01"}
    session = FakeSession(FakeResponse(200, {"content": [{"text": "style A"}]}))
    provider = CompletionProvider(settings, session=session)

    assert provider.generate("task") == "style A"
    headers = session.calls[0]["headers"]
    assert headers["x-api-key"] == "sk-test"
    assert "Authorization" not in headers
    assert headers["anthropic-version"] == "2023-06-01"


def test_http_500_raises_with_status_and_body(settings):
    session = FakeSession(FakeResponse(500, text="upstream exploded"))
    provider = CompletionProvider(settings, session=session)

    with pytest.raises(AIProcessingError) as exc_info:
        provider.generate("task")

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "upstream exploded"
    assert "500" in str(exc_info.value)


def test_http_401_logs_remediation(settings, caplog):
    session = FakeSession(FakeResponse(401, text="invalid key"))
    provider = CompletionProvider(settings, session=session)

    with pytest.raises(AIProcessingError):
        provider.generate("task")

    assert "check the API key" in caplog.text


def test_network_error_is_wrapped(settings, connection_error):
    provider = CompletionProvider(settings, session=FakeSession(connection_error))

    with pytest.raises(AIProcessingError) as exc_info:
        provider.generate("task")

    assert exc_info.value.status_code is None


def test_missing_key_raises_without_calling_api(settings):
    settings.ai_api_key = ""
    session = FakeSession()
    provider = CompletionProvider(settings, session=session)

    with pytest.raises(AIProcessingError, match="not configured"):
        provider.generate("task")
    assert session.calls == []


def test_empty_choices_is_an_error(settings):
    provider = CompletionProvider(settings, session=FakeSession(FakeResponse(200, {"choices": []})))

    with pytest.raises(AIProcessingError, match="empty"):
        provider.generate("task")


def test_empty_description_rejected(settings):
    provider = CompletionProvider(settings, session=FakeSession())

    with pytest.raises(ValueError):
        provider.generate("   ")
