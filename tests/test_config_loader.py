from __future__ import annotations

import pytest

from aduib_intercept.config import (
    ConfigError,
    EngineConfig,
    InterceptorEngineConfig,
    load_config,
    load_config_with_overloads,
)


def _write(tmp_path, name: str, content: str):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults():
    config = InterceptorEngineConfig()
    assert config.engine == EngineConfig(max_workers=None, drain_timeout_seconds=5.0, list_page_size=50)
    assert config.logging.format == "json"
    assert config.server.name == "aduib-intercept"


def test_load_yaml_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("INTERCEPT_WORKERS", "8")
    monkeypatch.delenv("INTERCEPT_LEVEL", raising=False)
    path = _write(
        tmp_path,
        "engine.yaml",
        """
engine:
  max_workers: ${INTERCEPT_WORKERS}
  drain_timeout_seconds: 2.5
logging:
  format: Console
  level: ${INTERCEPT_LEVEL:-debug}
server:
  name: gateway
""",
    )
    config = load_config(path)
    assert config.engine.max_workers == 8
    assert config.engine.drain_timeout_seconds == 2.5
    assert config.engine.list_page_size == 50
    assert config.logging.format == "console"
    assert config.logging.level == "DEBUG"
    assert config.server.name == "gateway"


def test_root_key_is_unwrapped(tmp_path):
    path = _write(tmp_path, "nested.yml", "aduib_intercept:\n  engine:\n    list_page_size: 10\n")
    assert load_config(path).engine.list_page_size == 10


def test_overloads_merge_nested_sections(tmp_path):
    base = _write(tmp_path, "base.yaml", "engine:\n  max_workers: 4\n  list_page_size: 20\n")
    local = _write(tmp_path, "local.yaml", "engine:\n  list_page_size: 5\nserver:\n  version: '2.0'\n")
    config = load_config_with_overloads(base, local)
    assert config.engine.max_workers == 4
    assert config.engine.list_page_size == 5
    assert config.server.version == "2.0"


def test_empty_file_gives_defaults(tmp_path):
    assert load_config(_write(tmp_path, "empty.yaml", "")) == InterceptorEngineConfig()


@pytest.mark.parametrize(
    "name, content, fragment",
    [
        ("config.json", "{}", "Unsupported config file type"),
        ("list.yaml", "- 1\n- 2\n", "must be a mapping"),
        ("broken.yaml", "engine: [unclosed\n", "Failed to load config file"),
        ("env.yaml", "server:\n  name: ${INTERCEPT_SURELY_UNSET}\n", "INTERCEPT_SURELY_UNSET"),
        ("workers.yaml", "engine:\n  max_workers: 0\n", "engine.max_workers must be positive"),
        ("level.yaml", "logging:\n  level: loud\n", "logging.level"),
        ("section.yaml", "engine: 3\n", "engine must be a mapping"),
    ],
)
def test_invalid_files_raise_config_error(tmp_path, monkeypatch, name, content, fragment):
    monkeypatch.delenv("INTERCEPT_SURELY_UNSET", raising=False)
    with pytest.raises(ConfigError, match=fragment):
        load_config(_write(tmp_path, name, content))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml")


def test_from_dict_accepts_section_mappings():
    config = InterceptorEngineConfig(engine={"max_workers": "3"})
    assert config.engine.max_workers == 3
    assert InterceptorEngineConfig.from_dict(config) is config
