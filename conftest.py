"""
Root test conftest — isolate provider key environment variables so that
settings tests are not affected by real keys in the developer's or CI
environment.
"""
import pytest

_API_KEY_ENV_VARS = [
    "OPENAI_API_KEY",
    "GOOGLE_MAPS_API_KEY",
    "GOOGLE_API_KEY",
    "TAVILY_API_KEY",
    "REDIS_URL",
    "GOVMAP_AGENT_CONFIG",
]


@pytest.fixture(autouse=True)
def _clear_api_keys_from_env(monkeypatch):
    """Remove provider env vars for every test so Settings() behaves as if
    no keys are present unless the test explicitly provides them. Also
    disables .env file loading so a local .env never leaks real
    credentials into tests."""
    for var in _API_KEY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
