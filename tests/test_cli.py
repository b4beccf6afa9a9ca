import queue

import pytest

from h5viz import __version__, cli
from h5viz.errors import TerminalInitFailure
from h5viz.ui.events import Key
from h5viz.ui.layout import PanelKind


class ScriptedTerminal:
    """Stands in for the curses terminal: quits after the scripted keys."""

    keys = [Key('q')]
    instances = []

    def __init__(self):
        self.frames = []
        self.events = queue.Queue()
        for key in self.keys:
            self.events.put(key)
        ScriptedTerminal.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def size(self):
        return (80, 24)

    def draw(self, frame):
        self.frames.append(frame)

    def read(self, timeout):
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None


class BrokenTerminal:
    def __enter__(self):
        raise TerminalInitFailure("cannot initialise terminal: no tty")

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def log_args(tmp_path):
    return ["--log-file", str(tmp_path / "h5viz.log")]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep ./h5viz.toml and ~/.h5viz/config.toml out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


@pytest.fixture
def scripted_terminal(monkeypatch):
    ScriptedTerminal.instances = []
    monkeypatch.setattr(cli, "Terminal", ScriptedTerminal)
    return ScriptedTerminal


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_missing_file_argument_exits_2(log_args):
    with pytest.raises(SystemExit) as exc:
        cli.main(log_args)
    assert exc.value.code == 2


@pytest.mark.parametrize("flags", [
    ["--tick-rate", "0"],
    ["--frame-rate", "-2"],
    ["--tick-rate", "fast"],
    ["--log-level", "LOUD"],
    ["--max-workers", "0"],
])
def test_invalid_arguments_exit_2(h5_path, log_args, flags):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--file", str(h5_path)] + log_args + flags)
    assert exc.value.code == 2


def test_missing_file_exits_1(tmp_path, log_args, capsys):
    code = cli.main(["--file", str(tmp_path / "missing.h5")] + log_args)
    assert code == 1
    assert "file not found" in capsys.readouterr().err


def test_unsupported_file_exits_1(tmp_path, log_args, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("plain text")
    assert cli.main(["--file", str(path)] + log_args) == 1
    assert "unsupported format" in capsys.readouterr().err


def test_unknown_dataset_exits_1(h5_path, log_args, capsys, scripted_terminal):
    code = cli.main(["--file", str(h5_path), "--dataset", "nope"] + log_args)
    assert code == 1
    assert "dataset not found: nope" in capsys.readouterr().err
    assert scripted_terminal.instances == []


def test_terminal_failure_exits_1(h5_path, log_args, capsys, monkeypatch):
    monkeypatch.setattr(cli, "Terminal", BrokenTerminal)
    assert cli.main(["--file", str(h5_path)] + log_args) == 1
    assert "no tty" in capsys.readouterr().err


def test_session_quits_with_0(h5_path, log_args, scripted_terminal):
    assert cli.main(["--file", str(h5_path)] + log_args) == 0
    (terminal,) = scripted_terminal.instances
    assert terminal.frames


def test_initial_dataset_is_opened(h5_path, log_args, scripted_terminal):
    code = cli.main(["--file", str(h5_path), "--dataset", "/routput/Dmd"] + log_args)
    assert code == 0
    (terminal,) = scripted_terminal.instances
    assert any(PanelKind.TABLE in frame.kinds for frame in terminal.frames)


def test_config_file_supplies_settings(h5_path, tmp_path, log_args, scripted_terminal):
    config = tmp_path / "viewer.toml"
    config.write_text(f'[h5viz]\nfile = "{h5_path}"\ncache_mb = 8\ntick_rate = 10\n')
    assert cli.main(["--config", str(config)] + log_args) == 0


def test_command_line_overrides_config_file(h5_path, tmp_path, log_args):
    config = tmp_path / "viewer.toml"
    config.write_text(f'[h5viz]\nfile = "{h5_path}"\ntick_rate = 10\n')
    parser = cli.build_parser()
    args = parser.parse_args(["--config", str(config), "--tick-rate", "2"] + log_args)
    ctx = cli.build_context(args, parser)
    assert ctx.tick_rate == 2
    assert ctx.file == str(h5_path)


def test_invalid_config_value_exits_2(h5_path, tmp_path, log_args):
    config = tmp_path / "viewer.toml"
    config.write_text(f'[h5viz]\nfile = "{h5_path}"\nwindow_rows = 0\n')
    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config)] + log_args)
    assert exc.value.code == 2


def test_unwritable_log_file_exits_2(h5_path, tmp_path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    with pytest.raises(SystemExit) as exc:
        cli.main(["--file", str(h5_path), "--log-file", str(blocker / "h5viz.log")])
    assert exc.value.code == 2
    assert "cannot write log file" in capsys.readouterr().err
