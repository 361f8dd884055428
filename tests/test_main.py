"""Tests for the command line entry point"""
import logging
from datetime import date, timedelta

import pytest

from smartermeter.config import ConfigStore, Configuration
from smartermeter.main import main, parse_args


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("SMARTERMETER_CONFIG", "SMARTERMETER_LOG_LEVEL", "SMARTERMETER_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestMain:
    """Tests for main()"""

    def test_parse_args_defaults(self):
        args = parse_args([])
        assert not args.once
        assert not args.configure
        assert not args.list_missing
        assert args.config is None

    def test_corrupt_config_exits_with_error(self, config_path):
        with open(config_path, "w") as f:
            f.write("username: [unclosed\n")
        assert main(["--config", config_path, "--log-format", "text"]) == 1

    def test_list_missing(self, config_path, archive_dir, capsys):
        start = date.today() - timedelta(days=2)
        ConfigStore(config_path).save(Configuration(data_dir=archive_dir, start_date=start))

        assert main(["--config", config_path, "--list-missing", "--log-level", "ERROR"]) == 0

        printed = capsys.readouterr().out.split()
        assert printed == [start.isoformat(), (start + timedelta(days=1)).isoformat()]

    def test_once_with_incomplete_config_does_not_prompt(self, config_path, monkeypatch):
        def fail_prompt(*args, **kwargs):
            raise AssertionError("prompted")

        monkeypatch.setattr("builtins.input", fail_prompt)
        assert main(["--config", config_path, "--once", "--log-level", "ERROR"]) == 0

    def test_configure_saves_credentials(self, config_path, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: "alice")
        monkeypatch.setattr("smartermeter.setup_prompt.getpass.getpass", lambda prompt: "pw")

        assert main(["--config", config_path, "--configure", "--log-level", "ERROR"]) == 0

        store = ConfigStore(config_path)
        config = store.load()
        assert config.username == "alice"
        assert store.password(config) == "pw"

    def test_undecodable_password_exits_with_error(self, config_path, archive_dir):
        ConfigStore(config_path).save(Configuration(
            data_dir=archive_dir, username="alice", password="AAAAAAAAAAA=\n",
        ))
        assert main(["--config", config_path, "--once", "--log-format", "text"]) == 1
