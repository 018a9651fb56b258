"""Unit tests for Settings, the YAML loader and feature flags."""

from __future__ import annotations

from pathlib import Path

import pytest

from ragler.config.loader import load_config
from ragler.config.settings import Settings
from ragler.services.feature_flags import ALL_FEATURES, FeatureFlags
from ragler.utils.errors import ForbiddenError


class TestLoadConfig:
    def test_env_values_override_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "chunking:\n  chunk_size: 50\n  chars_per_token: 3.0\npublish:\n  max_tags: 5\n",
            encoding="utf-8",
        )

        config = load_config(str(path), Settings(chunk_size=700, chunk_overlap=20))

        assert config["chunking"]["chunk_size"] == 700
        assert config["chunking"]["overlap"] == 20
        assert config["chunking"]["chars_per_token"] == 3.0
        assert config["publish"] == {"max_tags": 5}

    def test_missing_file_yields_env_sections(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), Settings(log_level="DEBUG"))
        assert config["logging"] == {"level": "DEBUG"}
        assert "publish" not in config

    def test_repository_config_parses(self) -> None:
        config = load_config("config/config.yaml", Settings())
        assert config["publish"]["visibility"] == "internal"
        assert config["chunking"]["max_ratio"] == 1.75


class TestFeatureFlags:
    def test_from_settings(self) -> None:
        flags = FeatureFlags.from_settings(Settings(feature_agent=False, feature_web_ingest=False))
        assert flags.as_dict() == {
            "web_ingest": False,
            "file_ingest": True,
            "agent": False,
            "semantic_chunking": True,
        }

    def test_default_enables_everything(self) -> None:
        flags = FeatureFlags()
        assert all(flags.is_enabled(name) for name in ALL_FEATURES)

    def test_require(self) -> None:
        flags = FeatureFlags(["agent"])
        flags.require("agent")
        with pytest.raises(ForbiddenError):
            flags.require("web_ingest")
