import logging
import os

import pytest
from pydantic import ValidationError

from rproxy.core import logging as proxy_logging
from rproxy.core.config import Settings, load_settings
from rproxy.core.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run every test without APP_* variables and without a config.toml in cwd."""
    for key in list(os.environ):
        if key.startswith("APP_") or key == "LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


def _write_config(tmp_path, text: str) -> str:
    path = tmp_path / "proxy.toml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_file_or_env():
    s = load_settings()
    assert s.server.host == "127.0.0.1"
    assert s.server.port == 8080
    assert s.target.base_url == "http://localhost:80"
    assert s.proxy.path_prefix == "/"
    assert s.request.timeout == 30
    assert s.request.accept_invalid_certs is False
    assert s.log.level == "info"
    assert s.config_path == "config.toml"


def test_config_toml_in_cwd_is_picked_up(tmp_path):
    (tmp_path / "config.toml").write_text('[target]\nhost = "backend"\nport = 9000\n', encoding="utf-8")
    s = load_settings()
    assert s.target.base_url == "http://backend:9000"


def test_file_values_loaded_from_config_path(tmp_path, monkeypatch):
    path = _write_config(
        tmp_path,
        """
[server]
host = "0.0.0.0"
port = 8000

[target]
protocol = "https"
host = "api.internal"
port = 8443

[proxy]
path_prefix = "/gateway"

[request]
timeout = 12
accept_invalid_certs = true

[log]
level = "debug"
""",
    )
    monkeypatch.setenv("APP_CONFIG_PATH", path)

    s = load_settings()
    assert s.server.host == "0.0.0.0"
    assert s.server.port == 8000
    assert s.target.base_url == "https://api.internal:8443"
    assert s.proxy.path_prefix == "/gateway"
    assert s.request.timeout == 12
    assert s.request.accept_invalid_certs is True
    assert s.log.level == "debug"
    assert s.config_path == path


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = _write_config(tmp_path, '[target]\nhost = "from-file"\nport = 9000\n')
    monkeypatch.setenv("APP_CONFIG_PATH", path)
    monkeypatch.setenv("APP_TARGET__PORT", "9100")
    monkeypatch.setenv("APP_REQUEST__ACCEPT_INVALID_CERTS", "true")

    s = load_settings()
    # host still comes from the file, port from the environment
    assert s.target.host == "from-file"
    assert s.target.port == 9100
    assert s.request.accept_invalid_certs is True


def test_keyword_overrides_win(monkeypatch):
    monkeypatch.setenv("APP_PROXY__PATH_PREFIX", "/env")
    s = load_settings(proxy={"path_prefix": "/kw"})
    assert s.proxy.path_prefix == "/kw"


def test_settings_are_immutable():
    s = load_settings()
    with pytest.raises(ValidationError):
        s.target.port = 1
    with pytest.raises(ValidationError):
        s.config_path = "other.toml"


def test_invalid_port_is_config_error(monkeypatch):
    monkeypatch.setenv("APP_SERVER__PORT", "not-a-port")
    with pytest.raises(ConfigError) as exc_info:
        load_settings()
    assert exc_info.value.status_code == 500
    assert str(exc_info.value).startswith("Configuration error: ")


def test_port_out_of_range_is_config_error():
    with pytest.raises(ConfigError):
        load_settings(target={"port": 70000})


def test_non_positive_timeout_is_config_error():
    with pytest.raises(ConfigError):
        load_settings(request={"timeout": 0})


def test_malformed_toml_is_config_error(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_CONFIG_PATH", _write_config(tmp_path, "[target\nhost = "))
    with pytest.raises(ConfigError):
        load_settings()


def test_malformed_target_is_accepted_at_load_time():
    # reported per request instead
    s = Settings(target={"protocol": "ftp", "host": ""})
    assert s.target.base_url == "ftp://:80"


# --- logging ---------------------------------------------------------------

@pytest.fixture
def captured_basic_config(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
    return calls


def test_setup_logging_uses_configured_level(captured_basic_config):
    proxy_logging.setup_logging("debug")
    assert captured_basic_config[0]["level"] == "DEBUG"
    assert "%(name)s" in captured_basic_config[0]["format"]


@pytest.mark.parametrize("level, expected", [("warn", "WARNING"), ("trace", "DEBUG"), ("error", "ERROR")])
def test_setup_logging_accepts_level_aliases(captured_basic_config, level, expected):
    proxy_logging.setup_logging(level)
    assert captured_basic_config[0]["level"] == expected


def test_log_level_env_overrides_config(captured_basic_config, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "error")
    proxy_logging.setup_logging("debug")
    assert captured_basic_config[0]["level"] == "ERROR"
