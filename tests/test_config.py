"""Tests for store configuration and the backend factory."""

import pytest

from docshelf.backend import StoreBundle, create_stores
from docshelf.config import (
    CONFIG_FILENAME,
    StoreConfig,
    get_default_store_path,
    load_config,
    load_or_create_config,
    save_config,
)


class TestConfig:

    def test_create_writes_defaults(self, tmp_path):
        config = load_or_create_config(tmp_path)

        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.backend == "local"
        assert config.tag_retry_limit == 5
        assert config.default_timeout is None
        assert config.log_level == "INFO"

    def test_round_trip(self, tmp_path):
        config = StoreConfig(
            path=tmp_path,
            tag_retry_limit=9,
            default_timeout=2.5,
            log_level="DEBUG",
            backend="remote",
            backend_params={"bucket": "docs"},
        )
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.tag_retry_limit == 9
        assert loaded.default_timeout == 2.5
        assert loaded.log_level == "DEBUG"
        assert loaded.backend == "remote"
        assert loaded.backend_params == {"bucket": "docs"}
        assert loaded.created == config.created

    def test_load_existing_is_not_overwritten(self, tmp_path):
        save_config(StoreConfig(path=tmp_path, tag_retry_limit=2))
        assert load_or_create_config(tmp_path).tag_retry_limit == 2

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[store]\nversion = 99\n")
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    @pytest.mark.parametrize("body", [
        "[coordinator]\ntag_retry_limit = 0\n",
        "[coordinator]\ntag_retry_limit = \"many\"\n",
        "[coordinator]\ndefault_timeout = -1\n",
    ])
    def test_invalid_coordinator_settings(self, tmp_path, body):
        (tmp_path / CONFIG_FILENAME).write_text(body)
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_store_paths(self, tmp_path):
        config = StoreConfig(path=tmp_path)
        assert config.content_path == tmp_path / "content"
        assert config.metadata_path == tmp_path / "metadata.db"
        assert config.search_path == tmp_path / "search.db"
        assert config.orphans_path == tmp_path / "orphans.db"

    def test_default_store_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCSHELF_STORE_PATH", str(tmp_path / "env-store"))
        assert get_default_store_path() == (tmp_path / "env-store").resolve()

    def test_default_store_path_home(self, monkeypatch):
        monkeypatch.delenv("DOCSHELF_STORE_PATH", raising=False)
        assert get_default_store_path().name == ".docshelf"


class TestBackendFactory:

    def test_local_backend(self, tmp_path):
        bundle = create_stores(load_or_create_config(tmp_path))
        try:
            assert isinstance(bundle, StoreBundle)
            assert bundle.is_local
            assert (tmp_path / "content").is_dir()
            assert (tmp_path / "metadata.db").exists()
        finally:
            bundle.close()

    def test_unknown_backend(self, tmp_path):
        config = StoreConfig(path=tmp_path, backend="no-such-backend")
        with pytest.raises(ValueError, match="no-such-backend"):
            create_stores(config)
