from defence_coach.config import Settings


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LLM_TIMEOUT", "12.5")
    monkeypatch.setenv("LLM_API_KEY", "sk-test-key")
    monkeypatch.setenv("DEV_MOCK_FALLBACK", "yes")
    settings = Settings.from_env()
    assert settings.llm_timeout == 12.5
    assert settings.llm_api_key == "sk-test-key"
    assert settings.dev_mock_fallback is True


def test_invalid_timeout_falls_back_to_default(monkeypatch, caplog):
    monkeypatch.setenv("LLM_TIMEOUT", "soon")
    with caplog.at_level("WARNING", logger="defence_coach.config"):
        settings = Settings.from_env()
    assert settings.llm_timeout == 30.0
    assert "LLM_TIMEOUT" in caplog.text


def test_empty_timeout_uses_default(monkeypatch):
    monkeypatch.setenv("LLM_TIMEOUT", "")
    monkeypatch.delenv("DEV_MOCK_FALLBACK", raising=False)
    settings = Settings.from_env()
    assert settings.llm_timeout == 30.0
    assert settings.dev_mock_fallback is False
