import pytest
from pydantic import ValidationError

from apex_claw.config import AgentConfig, _interpolate_env_vars, load_config
from apex_claw.errors import ConfigMissingError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("TELEGRAM_BOT_TOKEN", "OWNER_ID", "ZAI_TOKEN", "APEX_MODEL", "TELEGRAM_API_ID"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return monkeypatch


def test_template_is_used_without_config_file(clean_env, tmp_path):
    clean_env.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    clean_env.setenv("OWNER_ID", "1001")

    config = load_config(tmp_path / "missing.yaml", tmp_path / "missing.env")

    assert config.telegram.bot_token == "123:abc"
    assert config.telegram.owner_id == "1001"
    assert config.telegram.api_id is None
    assert config.agent.model == "GLM-4.7"
    assert config.agent.max_iterations == 10
    assert config.scheduler.tick_seconds == 30
    config.require_mandatory()


def test_missing_mandatory_values(clean_env, tmp_path):
    config = load_config(tmp_path / "missing.yaml", tmp_path / "missing.env")

    with pytest.raises(ConfigMissingError) as exc:
        config.require_mandatory()
    assert exc.value.missing == ["TELEGRAM_BOT_TOKEN", "OWNER_ID"]


def test_yaml_file_with_defaults(clean_env, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        'telegram:\n  bot_token: "${TELEGRAM_BOT_TOKEN:-fallback}"\n  owner_id: "42"\n'
        "agent:\n  max_iterations: 4\n  history_limit: 20\n"
        'scheduler:\n  timezone: "Europe/Berlin"\n',
        encoding="utf-8",
    )

    config = load_config(path, tmp_path / "missing.env")

    assert config.telegram.bot_token == "fallback"
    assert config.agent.max_iterations == 4
    assert config.agent.history_limit == 20
    assert config.scheduler.timezone == "Europe/Berlin"


def test_env_file_is_loaded(clean_env, tmp_path):
    env = tmp_path / ".env"
    env.write_text("APEX_MODEL=GLM-5-thinking\n", encoding="utf-8")

    config = load_config(tmp_path / "missing.yaml", env)

    assert config.agent.model == "GLM-5-thinking"


def test_interpolation():
    text = "a: ${ONE}\nb: ${TWO:-two}\nc: ${THREE}"
    assert _interpolate_env_vars(text, extra={"ONE": "1", "THREE": ""}) == "a: 1\nb: two\nc: "


def test_agent_config_validation():
    with pytest.raises(ValidationError):
        AgentConfig(max_iterations=0)
