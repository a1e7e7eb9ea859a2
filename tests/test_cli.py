import logging
from types import SimpleNamespace

import pytest

from gridrr import cli
from gridrr.config import AppConfig, LoggingConfig, StoreConfig
from gridrr.store import NotFound, StoreError


@pytest.fixture
def restore_root_handlers():
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
    yield
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        logging.getLogger().addHandler(handler)


def test_configure_logging_defaults_to_console_only(restore_root_handlers):
    cli.configure_logging("INFO")

    handlers = logging.getLogger().handlers
    assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
    assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_with_log_file_creates_file_handler(
    restore_root_handlers, tmp_path
):
    log_path = tmp_path / "nested" / "gridrr.log"
    cli.configure_logging("DEBUG", str(log_path))

    assert log_path.exists()
    handlers = logging.getLogger().handlers
    assert any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        cli.configure_logging("CHATTY")


def _patch_common(monkeypatch, app_config=None):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    monkeypatch.setattr(
        cli, "parse_app_config", lambda path: app_config or AppConfig()
    )
    monkeypatch.setattr(cli, "parse_env_config", lambda path: {})


def test_main_builds_feed_run_config(monkeypatch, capsys):
    app_config = AppConfig(
        page_size=6,
        store=StoreConfig(connection_string="sqlite:///gridrr.db"),
        categories_file="categories.xml",
    )
    _patch_common(monkeypatch, app_config)
    captured = {}

    def fake_execute(config):
        captured["config"] = config
        return SimpleNamespace(output_text="feed output", payload=None, success=True)

    monkeypatch.setattr(cli, "execute", fake_execute)

    exit_code = cli.main(
        ["feed", "--category", "dark", "--sort", "popular", "--pages", "3"]
    )

    assert exit_code == 0
    config = captured["config"]
    assert config.command == "feed"
    assert config.category == "dark"
    assert config.sort_order == "popular"
    assert config.pages == 3
    assert config.page_size == 6
    assert config.database_connection_string == "sqlite:///gridrr.db"
    assert config.categories_file == "categories.xml"
    assert "feed output" in capsys.readouterr().out


def test_main_defaults_to_feed_command(monkeypatch):
    _patch_common(monkeypatch)
    captured = {}

    def fake_execute(config):
        captured["config"] = config
        return SimpleNamespace(output_text="", payload=None, success=True)

    monkeypatch.setattr(cli, "execute", fake_execute)

    assert cli.main(["--load-websites", "seed.json"]) == 0
    assert captured["config"].command == "feed"
    assert captured["config"].load_websites_path == "seed.json"


def test_main_cli_overrides_logging(monkeypatch):
    captured = {}

    def fake_configure(level, log_file=None):
        captured["level"] = level
        captured["file"] = log_file

    monkeypatch.setattr(cli, "configure_logging", fake_configure)
    monkeypatch.setattr(
        cli,
        "parse_app_config",
        lambda path: AppConfig(logging=LoggingConfig(level="INFO", file="config.log")),
    )
    monkeypatch.setattr(
        cli,
        "execute",
        lambda config: SimpleNamespace(output_text="", payload=None, success=True),
    )

    cli.main(["--log-level", "DEBUG", "--log-file", "cli.log", "categories"])

    assert captured == {"level": "DEBUG", "file": "cli.log"}


@pytest.mark.parametrize("error", [NotFound("abc"), StoreError("offline")])
def test_main_returns_error_code_for_store_failures(monkeypatch, error):
    _patch_common(monkeypatch)

    def failing_execute(config):
        raise error

    monkeypatch.setattr(cli, "execute", failing_execute)

    assert cli.main(["site", "abc"]) == 1


def test_main_returns_error_code_when_feed_failed(monkeypatch):
    _patch_common(monkeypatch)
    monkeypatch.setattr(
        cli,
        "execute",
        lambda config: SimpleNamespace(output_text="oops", payload=None, success=False),
    )

    assert cli.main(["feed"]) == 1


def test_main_exits_on_invalid_value(monkeypatch):
    _patch_common(monkeypatch)

    def invalid(config):
        raise ValueError("--pages must be positive.")

    monkeypatch.setattr(cli, "execute", invalid)

    with pytest.raises(SystemExit):
        cli.main(["feed", "--pages", "0"])
