"""Tests for the slack-cli-bridge command line."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from slack_cli_bridge.cli.commands.serve import RESTART_NOTICE, serve_forever
from slack_cli_bridge.cli.main import cli
from slack_cli_bridge.streaming.log_writer import LogWriter


@pytest.fixture(autouse=True)
def isolated_environment():
    with patch("slack_cli_bridge.utils.config.load_dotenv"), patch(
        "slack_cli_bridge.cli.commands.run.setup_logging"
    ), patch("slack_cli_bridge.cli.commands.serve.setup_logging"):
        yield


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    directory.mkdir()
    (directory / "commands.yaml").write_text(
        "commands:\n"
        "  - prefix: py\n"
        f'    binary: "{sys.executable}"\n'
        '    args: ["-c"]\n'
        "    description: Python snippet\n"
        "  - prefix: kimi\n"
        "    binary: kimi\n"
        "    envelope: true\n"
        "    session_flag: -S\n",
        encoding="utf-8",
    )
    return directory


@pytest.fixture
def env(tmp_path):
    return {
        "BRIDGE_LOG_DIR": str(tmp_path / "logs"),
        "ENVELOPE_PROMPT_FILE": str(tmp_path / "missing-prompt.txt"),
        "SLACK_BOT_TOKEN": "",
        "SLACK_APP_TOKEN": "",
        "SLACK_DEFAULT_CHANNEL": "",
        "SLACK_LISTEN_CHANNELS": "",
        "SESSION_TIMEOUT_MINUTES": "30",
    }


class TestCommandsCommand:
    def test_lists_commands(self, config_dir, env):
        result = CliRunner().invoke(cli, ["commands", "--config-dir", str(config_dir)], env=env)

        assert result.exit_code == 0
        assert f"py: {sys.executable} (one-shot) - Python snippet" in result.output
        assert "kimi: kimi (one-shot) [envelope, continuation]" in result.output

    def test_missing_config(self, tmp_path, env):
        result = CliRunner().invoke(cli, ["commands", "--config-dir", str(tmp_path / "nope")], env=env)

        assert result.exit_code != 0
        assert "Config file not found" in result.output


class TestRunCommand:
    def test_console_run_exits_with_process_code(self, config_dir, env):
        result = CliRunner().invoke(
            cli,
            ["run", "py", "print('hi from py'); raise SystemExit(3)", "--console", "--config-dir", str(config_dir)],
            env=env,
        )

        assert result.exit_code == 3
        assert "🚀 Session started — Python snippet" in result.output
        assert "hi from py" in result.output
        assert "❌ Exited with code 3" in result.output
        assert "❌ Session ended (exit code 3)" in result.output

    def test_timeout_exits_124(self, config_dir, env):
        env["SESSION_TIMEOUT_MINUTES"] = "0.002"

        result = CliRunner().invoke(
            cli,
            ["run", "py", "import time; time.sleep(30)", "--console", "--config-dir", str(config_dir)],
            env=env,
        )

        assert result.exit_code == 124
        assert "⏱️ Session timed out" in result.output

    def test_unknown_prefix(self, config_dir, env):
        result = CliRunner().invoke(
            cli, ["run", "nope", "hello", "--console", "--config-dir", str(config_dir)], env=env
        )

        assert result.exit_code == 1
        assert "Unknown command prefix 'nope'" in result.output

    def test_slack_requires_token(self, config_dir, env):
        result = CliRunner().invoke(
            cli, ["run", "py", "pass", "--channel", "C1", "--config-dir", str(config_dir)], env=env
        )

        assert result.exit_code == 1
        assert "SLACK_BOT_TOKEN is not set" in result.output

    def test_slack_requires_channel(self, config_dir, env):
        env["SLACK_BOT_TOKEN"] = "xoxb-1"

        result = CliRunner().invoke(cli, ["run", "py", "pass", "--config-dir", str(config_dir)], env=env)

        assert result.exit_code == 1
        assert "No channel given" in result.output


class TestServeCommand:
    def test_requires_both_tokens(self, config_dir, env):
        env["SLACK_BOT_TOKEN"] = "xoxb-1"

        result = CliRunner().invoke(cli, ["serve", "--config-dir", str(config_dir)], env=env)

        assert result.exit_code == 1
        assert "SLACK_BOT_TOKEN and SLACK_APP_TOKEN must both be set" in result.output

    def test_requires_channels(self, config_dir, env):
        env.update(SLACK_BOT_TOKEN="xoxb-1", SLACK_APP_TOKEN="xapp-1")

        result = CliRunner().invoke(cli, ["serve", "--config-dir", str(config_dir)], env=env)

        assert result.exit_code == 1
        assert "No channels to listen in" in result.output

    def test_listens_on_configured_channels(self, config_dir, env, tmp_path):
        env.update(SLACK_BOT_TOKEN="xoxb-1", SLACK_APP_TOKEN="xapp-1", SLACK_LISTEN_CHANNELS="C1, C2")

        with patch("slack_cli_bridge.cli.commands.serve.serve_forever", new=AsyncMock()) as serve_forever:
            result = CliRunner().invoke(
                cli, ["serve", "--config-dir", str(config_dir), "--cwd", str(tmp_path)], env=env
            )

        assert result.exit_code == 0
        config, channels, cwd = serve_forever.await_args.args
        assert channels == ["C1", "C2"]
        assert config.slack.app_token == "xapp-1"
        assert cwd == os.path.realpath(str(tmp_path))

    def test_channel_option_overrides_env(self, config_dir, env):
        env.update(SLACK_BOT_TOKEN="xoxb-1", SLACK_APP_TOKEN="xapp-1", SLACK_LISTEN_CHANNELS="C1")

        with patch("slack_cli_bridge.cli.commands.serve.serve_forever", new=AsyncMock()) as serve_forever:
            result = CliRunner().invoke(
                cli, ["serve", "--channel", "C7", "--config-dir", str(config_dir)], env=env
            )

        assert result.exit_code == 0
        assert serve_forever.await_args.args[1] == ["C7"]

class TestLogsCommands:
    @pytest.fixture
    def log_dir(self, tmp_path):
        directory = tmp_path / "logs"
        writer = LogWriter("session_20240501_100000_abcdef", directory)
        writer.open()
        writer.write("alpha\nbeta\ngamma\n")
        writer.close(0)
        return directory

    def test_list(self, log_dir):
        result = CliRunner().invoke(cli, ["logs", "list", "--log-dir", str(log_dir)])

        assert result.exit_code == 0
        assert "`session_20240501_100000_abcdef` (exit 0" in result.output

    def test_list_empty(self, tmp_path):
        result = CliRunner().invoke(cli, ["logs", "list", "--log-dir", str(tmp_path)])

        assert result.exit_code == 0
        assert "No session logs found." in result.output

    def test_tail(self, log_dir):
        result = CliRunner().invoke(cli, ["logs", "tail", "-n", "4", "--log-dir", str(log_dir)])

        assert result.exit_code == 0
        assert result.output.startswith("beta\ngamma\n")
        assert "exit code: 0" in result.output

    def test_show(self, log_dir):
        result = CliRunner().invoke(
            cli, ["logs", "show", "session_20240501_100000_abcdef", "--log-dir", str(log_dir)]
        )

        assert result.exit_code == 0
        assert "alpha\nbeta\ngamma\n" in result.output

    def test_show_unknown(self, log_dir):
        result = CliRunner().invoke(cli, ["logs", "show", "session_missing", "--log-dir", str(log_dir)])

        assert result.exit_code == 1
        assert "Log not found: session_missing" in result.output


class TestServeForever:
    @pytest.mark.asyncio
    async def test_connects_announces_and_closes_on_cancel(self, app_config):
        socket_client = AsyncMock()
        socket_client.socket_mode_request_listeners = []
        web_client = AsyncMock()
        web_client.chat_postMessage.return_value = {"ok": True, "ts": "1.1"}

        with patch(
            "slack_cli_bridge.cli.commands.serve.SocketModeClient", return_value=socket_client
        ), patch("slack_cli_bridge.cli.commands.serve.AsyncWebClient", return_value=web_client):
            task = asyncio.create_task(serve_forever(app_config, ["C1"]))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        socket_client.connect.assert_awaited_once()
        socket_client.close.assert_awaited_once()
        assert len(socket_client.socket_mode_request_listeners) == 1
        web_client.chat_postMessage.assert_awaited_once_with(
            channel="C1", text=RESTART_NOTICE, thread_ts=None
        )
