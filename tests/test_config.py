import pytest

from scorecard.config import OPTIONAL_VARS, REQUIRED_VARS, Settings, validate_config

REQUIRED_ENV = {
    "TWILIO_ACCOUNT_SID": "AC_test",
    "TWILIO_AUTH_TOKEN": "secret",
    "TWILIO_PHONE_NUMBER": "+15125550000",
    "PUBLIC_BASE_URL": "https://agent.example.com/",
    "OPENAI_API_KEY": "sk-test",
}


@pytest.fixture
def clean_env(monkeypatch):
    for var in REQUIRED_VARS + OPTIONAL_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def full_env(clean_env):
    for var, value in REQUIRED_ENV.items():
        clean_env.setenv(var, value)
    return clean_env


class TestSettingsFromEnv:
    def test_defaults(self, full_env):
        settings = Settings.from_env()
        assert settings.public_base_url == "https://agent.example.com"
        assert settings.call_mode == "turn"
        assert settings.openai_chat_model == "gpt-4o-mini"
        assert settings.observer_poll_interval == 2.0
        assert settings.port == 8000

    def test_overrides(self, full_env):
        full_env.setenv("CALL_MODE", "Stream")
        full_env.setenv("OBSERVER_POLL_INTERVAL", "0.5")
        full_env.setenv("LOG_LEVEL", "debug")
        full_env.setenv("PORT", "9000")
        settings = Settings.from_env()
        assert settings.call_mode == "stream"
        assert settings.observer_poll_interval == 0.5
        assert settings.log_level == "DEBUG"
        assert settings.port == 9000

    def test_unknown_call_mode_falls_back_to_turn(self, full_env):
        full_env.setenv("CALL_MODE", "carrier-pigeon")
        assert Settings.from_env().call_mode == "turn"


class TestWebsocketBaseUrl:
    @pytest.mark.parametrize("public,expected", [
        ("https://agent.example.com", "wss://agent.example.com"),
        ("http://localhost:8000", "ws://localhost:8000"),
        ("agent.example.com", "agent.example.com"),
    ])
    def test_scheme_swap(self, public, expected):
        assert Settings(public_base_url=public).websocket_base_url == expected


class TestValidateConfig:
    def test_passes_with_required_vars(self, full_env):
        validate_config()

    def test_missing_required_exits(self, clean_env, capsys):
        with pytest.raises(SystemExit) as exc:
            validate_config()
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "TWILIO_ACCOUNT_SID is not set" in err
        assert "OPENAI_API_KEY is not set" in err

    def test_bad_base_url_exits(self, full_env, capsys):
        full_env.setenv("PUBLIC_BASE_URL", "agent.example.com")
        with pytest.raises(SystemExit):
            validate_config()
        assert "PUBLIC_BASE_URL must start with" in capsys.readouterr().err

    def test_unset_optional_vars_warn(self, full_env, caplog):
        validate_config()
        assert any("Using defaults for" in r.getMessage() for r in caplog.records)
