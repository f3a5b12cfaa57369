import httpx
import pytest

from apex_claw.__main__ import main
from apex_claw.ai.client import ZaiClient
from apex_claw.app import ApexClawApp
from apex_claw.config import AppConfig, TelegramConfig, ToolsConfig, UpstreamConfig
from apex_claw.errors import ConfigMissingError

from conftest import OWNER
from test_handler import FakeAdapter


def make_config(tmp_path) -> AppConfig:
    return AppConfig(
        telegram=TelegramConfig(bot_token="123:abc", owner_id=OWNER),
        upstream=UpstreamConfig(token="a.e30.c"),
        tools=ToolsConfig(workspace_dir=str(tmp_path)),
    )


@pytest.mark.asyncio
async def test_app_wires_components(tmp_path):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="prod-fe-1.0.7"))
    config = make_config(tmp_path)
    adapter = FakeAdapter()
    app = ApexClawApp(config, adapter=adapter, client=ZaiClient(config.upstream, transport=transport))

    await app.start()
    try:
        assert {"schedule_task", "list_tasks", "cancel_task", "tg_send_message", "tg_send_file"} <= set(
            app.tool_registry.names()
        )
        assert app.client.fe_version.version == "prod-fe-1.0.7"
        assert await app.service_manager.health_check_all() == {"scheduler": True, "fe_version": True}
        assert adapter._message_callback == app.handler.handle
    finally:
        await app.stop()


def test_app_requires_mandatory_config():
    with pytest.raises(ConfigMissingError):
        ApexClawApp(AppConfig(), adapter=FakeAdapter())


def test_config_check_fails_without_token(tmp_path, monkeypatch, capsys):
    for name in ("TELEGRAM_BOT_TOKEN", "OWNER_ID"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)

    with pytest.raises(SystemExit) as exc:
        main(["config-check", "-c", str(tmp_path / "none.yaml"), "-e", str(tmp_path / "none.env")])

    assert exc.value.code == 1
    assert "TELEGRAM_BOT_TOKEN" in capsys.readouterr().err


def test_model_info(tmp_path, capsys):
    config = tmp_path / "config.yaml"
    config.write_text('agent:\n  model: "GLM-5-thinking-search"\n', encoding="utf-8")

    main(["model-info", "-c", str(config), "-e", str(tmp_path / "none.env")])

    out = capsys.readouterr().out
    assert "Upstream : glm-5" in out
    assert "Thinking : True" in out
    assert "Search   : True" in out
