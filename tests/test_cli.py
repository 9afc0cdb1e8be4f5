"""Tests for the Command Line Interface (CLI) module."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ephemeral_sync import cli
from ephemeral_sync.errors import BootstrapError
from ephemeral_sync.publish import PublishResult


@pytest.fixture
def state(tmp_path: Path, mocker: MagicMock) -> Path:
    """Points the CLI's config, log, mirror and PID paths into tmp_path."""
    mocker.patch("ephemeral_sync.cli.CONFIG_FILE", tmp_path / "config")
    mocker.patch("ephemeral_sync.cli.LOG_FILE", tmp_path / "sync.log")
    mocker.patch("ephemeral_sync.cli.MIRROR_DIR", tmp_path / "repo")
    mocker.patch("ephemeral_sync.cli.PID_FILE", tmp_path / "sync.pid")
    return tmp_path


def test_start_creates_default_config_first(
    state: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies the first start writes a config and does not spawn yet."""
    mock_spawn = mocker.patch("ephemeral_sync.cli.daemon.spawn_daemon")

    assert cli.main(["start"]) == 0

    assert (state / "config").exists()
    assert "Default config file created" in capsys.readouterr().out
    mock_spawn.assert_not_called()


def test_start_spawns_daemon(state: Path, mocker: MagicMock) -> None:
    """Verifies start launches the daemon when none is running."""
    (state / "config").write_text("watch .bashrc\n")
    mock_spawn = mocker.patch(
        "ephemeral_sync.cli.daemon.spawn_daemon", return_value=123
    )

    assert cli.main(["start"]) == 0
    mock_spawn.assert_called_once_with(state / "sync.log")


def test_start_declined_when_running(state: Path, mocker: MagicMock) -> None:
    """Verifies a running instance is kept when the user declines replacing it."""
    (state / "config").write_text("watch .bashrc\n")
    mocker.patch("ephemeral_sync.cli.daemon.check_instance", return_value=77)
    mocker.patch("ephemeral_sync.cli.Confirm.ask", return_value=False)
    mock_stop = mocker.patch("ephemeral_sync.cli.daemon.stop_daemon")
    mock_spawn = mocker.patch("ephemeral_sync.cli.daemon.spawn_daemon")

    assert cli.main(["start"]) == 1
    mock_stop.assert_not_called()
    mock_spawn.assert_not_called()


def test_start_replace_stops_running_instance(state: Path, mocker: MagicMock) -> None:
    """Verifies --replace stops the old daemon without prompting."""
    (state / "config").write_text("watch .bashrc\n")
    mocker.patch("ephemeral_sync.cli.daemon.check_instance", return_value=77)
    mock_confirm = mocker.patch("ephemeral_sync.cli.Confirm.ask")
    mock_stop = mocker.patch("ephemeral_sync.cli.daemon.stop_daemon")
    mocker.patch("ephemeral_sync.cli.daemon.spawn_daemon", return_value=78)

    assert cli.main(["start", "--replace"]) == 0
    mock_confirm.assert_not_called()
    mock_stop.assert_called_once_with(state / "sync.pid")


def test_start_with_bad_config(
    state: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies a malformed config is reported and nothing starts."""
    (state / "config").write_text("cooldown whenever\n")
    mock_spawn = mocker.patch("ephemeral_sync.cli.daemon.spawn_daemon")

    assert cli.main(["start"]) == 1
    assert "Config Error" in capsys.readouterr().out
    mock_spawn.assert_not_called()


def test_stop_when_not_running(state: Path, capsys: pytest.CaptureFixture) -> None:
    """Verifies stop reports a missing daemon."""
    assert cli.main(["stop"]) == 0
    assert "not running" in capsys.readouterr().out


def test_status_without_mirror(state: Path, capsys: pytest.CaptureFixture) -> None:
    """Verifies status works before the first cycle."""
    assert cli.main(["status"]) == 0

    out = capsys.readouterr().out
    assert "Stopped" in out
    assert "No mirror yet" in out


def test_status_with_mirror(
    state: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies status shows revision history and pending pushes."""
    (state / "repo" / ".git").mkdir(parents=True)
    (state / "config").write_text("watch .bashrc\nwatch .zshrc\n")
    mock_cls = mocker.patch("ephemeral_sync.cli.GitRepo")
    repo = mock_cls.return_value
    repo.revision_count.return_value = 4
    repo.get_last_commit_time.return_value = "5 minutes ago"
    repo.remote_url.return_value = "git@github.com:me/snap.git"
    repo.unpushed_count.return_value = 2

    assert cli.main(["status"]) == 0

    out = capsys.readouterr().out
    assert "Revisions:   4" in out
    assert "5 minutes ago" in out
    assert "2 patterns" in out
    assert "Unpushed:    2 revisions" in out


def test_restore_reports_bootstrap_error(
    state: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies a failed restore exits non-zero with the reason."""
    (state / "config").write_text("restore_url https://example.com/snap.zip\n")
    mocker.patch(
        "ephemeral_sync.cli.ops.restore_files",
        side_effect=BootstrapError("Failed to download archive"),
    )

    assert cli.main(["restore"]) == 1
    assert "Failed to download archive" in capsys.readouterr().out


def test_restore_without_url(state: Path, capsys: pytest.CaptureFixture) -> None:
    """Verifies restore is a no-op without restore_url."""
    (state / "config").write_text("watch .bashrc\n")

    assert cli.main(["restore"]) == 0
    assert "No restore_url specified" in capsys.readouterr().out


def test_deploy_passes_url(state: Path, mocker: MagicMock) -> None:
    """Verifies deploy forwards the URL and the CLI's state paths."""
    mock_deploy = mocker.patch("ephemeral_sync.cli.ops.deploy", return_value=2)

    assert cli.main(["deploy", "git@host:me/snap.git"]) == 0

    args = mock_deploy.call_args.args
    assert args[0] == "git@host:me/snap.git"
    assert args[2:] == (state / "repo", state / "config", state / "sync.pid")


def test_now_reports_push_failure(
    state: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies a local commit with a failed push still exits cleanly."""
    (state / "config").write_text("watch .bashrc\n")
    mocker.patch("ephemeral_sync.cli.daemon.setup_logging")
    mocker.patch(
        "ephemeral_sync.cli.ops.run_once",
        return_value=PublishResult(committed=True, push_error="host unreachable"),
    )

    assert cli.main(["now"]) == 0
    assert "push failed: host unreachable" in capsys.readouterr().out


def test_now_reports_failed_cycle(state: Path, mocker: MagicMock) -> None:
    """Verifies a failed cycle gives a non-zero exit code."""
    (state / "config").write_text("watch .bashrc\n")
    mocker.patch("ephemeral_sync.cli.daemon.setup_logging")
    mocker.patch("ephemeral_sync.cli.ops.run_once", return_value=None)

    assert cli.main(["now"]) == 1


def test_config_opens_editor(
    state: Path, mocker: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies config creates the default file and opens $EDITOR on it."""
    monkeypatch.setenv("EDITOR", "vim")
    mock_run = mocker.patch("ephemeral_sync.cli.subprocess.run")

    assert cli.main(["config"]) == 0

    assert (state / "config").exists()
    mock_run.assert_called_once_with(["vim", str(state / "config")])


def test_log_without_file(state: Path, capsys: pytest.CaptureFixture) -> None:
    """Verifies log explains when there is nothing to tail yet."""
    assert cli.main(["log"]) == 0
    assert "No log file found" in capsys.readouterr().out


def test_menu_dispatches_choice(state: Path, mocker: MagicMock) -> None:
    """Verifies running without a command opens the interactive menu."""
    mocker.patch("ephemeral_sync.cli.Prompt.ask", return_value="2")
    mock_stop = mocker.patch("ephemeral_sync.cli.stop", return_value=0)

    assert cli.main([]) == 0
    mock_stop.assert_called_once()


def test_help_groups_commands(capsys: pytest.CaptureFixture) -> None:
    """Verifies the help output groups subcommands under headers."""
    assert cli.main(["help"]) == 0

    out = capsys.readouterr().out
    assert "Daemon:" in out
    assert "Snapshot:" in out
    assert "deploy" in out
