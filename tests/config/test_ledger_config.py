"""
Tests for ledger_config: YAML loading, environment overrides, validation
and the config-to-kernel bridges.
"""

import logging
import textwrap

import pytest
import yaml

from ledger_config import CONFIG_PATH_ENV, get_active_config
from ledger_config.bridges import (
    build_ledger_defaults,
    build_registry,
    engine_options,
    log_level,
)
from ledger_config.loader import (
    apply_env_overrides,
    load_yaml_file,
    parse_config,
    parse_shards,
    parse_verification,
)
from ledger_kernel.domain.defaults import LedgerDefaults
from ledger_kernel.exceptions import ShardNotConfiguredError

MINIMAL = {"directory": {"url": "sqlite://"}}


def _write(tmp_path, body: str):
    path = tmp_path / "ledger.yaml"
    path.write_text(textwrap.dedent(body))
    return path


class TestPackagedDefaults:
    def test_defaults_yaml_loads(self):
        config = get_active_config(environ={})
        assert config.shard_count == 3
        assert sorted(config.shard_urls) == [0, 1, 2]
        assert config.directory.url.startswith("postgresql://")
        assert config.verification.token_ttl_seconds == 3600
        assert config.log_level == "INFO"

    def test_packaged_defaults_match_builtin_set(self):
        config = get_active_config(environ={})
        assert build_ledger_defaults(config) == LedgerDefaults.standard()

    def test_load_is_logged(self, captured_logs):
        get_active_config(environ={})
        record = next(r for r in captured_logs() if r["message"] == "ledger_config_loaded")
        assert record["shard_count"] == 3


class TestFileResolution:
    def test_explicit_path(self, tmp_path):
        path = _write(
            tmp_path,
            """
            directory: {url: "sqlite://"}
            shards:
              - {id: 0, url: "sqlite://"}
            """,
        )
        config = get_active_config(path, environ={})
        assert config.shard_count == 1
        assert config.shard_urls == {0: "sqlite://"}

    def test_path_from_environment(self, tmp_path):
        path = _write(tmp_path, 'directory: {url: "sqlite:///dir.db"}\nshard_count: 4\n')
        config = get_active_config(environ={CONFIG_PATH_ENV: str(path)})
        assert config.directory.url == "sqlite:///dir.db"
        assert config.shard_count == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml", environ={})

    def test_malformed_yaml(self, tmp_path):
        path = _write(tmp_path, "directory: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = _write(tmp_path, "- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)


class TestEnvironmentOverrides:
    def test_directory_url_override(self):
        merged = apply_env_overrides(dict(MINIMAL), {"DIRECTORY_DATABASE_URL": "postgresql://x/dir"})
        assert merged["directory"]["url"] == "postgresql://x/dir"

    def test_shard_url_override_and_addition(self):
        data = {**MINIMAL, "shards": [{"id": 0, "url": "postgresql://file/0"}]}
        merged = apply_env_overrides(
            data,
            {
                "DATABASE_URL_SHARD_0": "postgresql://env/0",
                "DATABASE_URL_SHARD_3": "postgresql://env/3",
                "UNRELATED": "x",
            },
        )
        config = parse_config(merged)
        assert config.shard_urls == {0: "postgresql://env/0", 3: "postgresql://env/3"}
        assert config.shard_count == 4

    def test_empty_env_value_ignored(self):
        data = {**MINIMAL, "shards": [{"id": 0, "url": "postgresql://file/0"}]}
        merged = apply_env_overrides(data, {"DATABASE_URL_SHARD_0": ""})
        assert parse_config(merged).shard_urls == {0: "postgresql://file/0"}

    def test_input_not_mutated(self):
        data = {**MINIMAL, "shards": [{"id": 0, "url": "a"}]}
        apply_env_overrides(data, {"DATABASE_URL_SHARD_0": "b"})
        assert data["shards"][0]["url"] == "a"


class TestValidation:
    def test_directory_url_required(self):
        with pytest.raises(KeyError):
            parse_config({"shards": []})

    def test_shard_count_must_be_positive(self):
        with pytest.raises(ValueError):
            parse_config(MINIMAL)
        with pytest.raises(ValueError):
            parse_config({**MINIMAL, "shard_count": 0})

    def test_duplicate_shard_ids(self):
        with pytest.raises(ValueError):
            parse_shards([{"id": 1, "url": "a"}, {"id": 1, "url": "b"}])

    def test_negative_shard_id(self):
        with pytest.raises(ValueError):
            parse_shards([{"id": -1, "url": "a"}])

    def test_shard_without_url_is_skipped(self):
        assert parse_shards([{"id": 0}, {"id": 1, "url": "b"}])[0].id == 1

    def test_bad_default_kind(self):
        data = {
            **MINIMAL,
            "shard_count": 1,
            "defaults": {"accounts": [{"name": "Stocks", "kind": "equity", "order": 0}]},
        }
        with pytest.raises(ValueError, match="equity"):
            parse_config(data)

    def test_verification_ttl_positive(self):
        with pytest.raises(ValueError):
            parse_verification({"token_ttl_seconds": 0})

    def test_confirm_template_needs_token(self):
        with pytest.raises(ValueError):
            parse_verification({"confirm_url_template": "https://app/verify"})

    def test_pool_size_positive(self):
        with pytest.raises(ValueError):
            parse_config({**MINIMAL, "shard_count": 1, "pool": {"size": 0}})


class TestBridges:
    def _config(self, **extra):
        return parse_config({**MINIMAL, "shards": [{"id": 0, "url": "sqlite://"}], **extra})

    def test_engine_options_from_pool(self):
        options = engine_options(self._config(pool={"size": 2, "max_overflow": 1, "echo": True}))
        assert options["pool_size"] == 2
        assert options["max_overflow"] == 1
        assert options["echo"] is True

    def test_build_registry(self):
        registry = build_registry(self._config(shard_count=2), auto_create_schema=True)
        try:
            assert registry.shard_count == 2
            assert registry.configured_shards == (0,)
            registry.connection_for(0)
            with pytest.raises(ShardNotConfiguredError):
                registry.connection_for(1)
        finally:
            registry.dispose()

    def test_custom_defaults(self):
        config = self._config(
            defaults={
                "accounts": [{"name": "Wallet", "kind": "asset", "order": 0}],
                "categories": [{"name": "Gifts", "kind": "income", "order": 0}],
            }
        )
        defaults = build_ledger_defaults(config)
        assert [e.name for e in defaults.accounts] == ["Wallet"]
        assert [e.name for e in defaults.categories] == ["Gifts"]

    def test_empty_defaults_fall_back_to_standard(self):
        assert build_ledger_defaults(self._config()) == LedgerDefaults.standard()

    def test_log_level(self):
        assert log_level(self._config(logging={"level": "debug"})) == logging.DEBUG
        with pytest.raises(ValueError):
            log_level(self._config(logging={"level": "chatty"}))
