from __future__ import annotations

from pathlib import Path

import pytest

from idevctl.core.config import load_config
from idevctl.core.errors import ConfigLoadError, ConfigValidationError


def _write_config(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))


def test_load_packaged_defaults() -> None:
    loaded = load_config()
    config = loaded.config
    assert config.label == "idevctl"
    assert config.lockdown_port == 62078
    assert config.pairing_retry_interval_s == 1.0
    assert config.core_device_version == "443.18"
    assert config.services["installation_proxy"] == "com.apple.mobile.installation_proxy"
    assert loaded.warnings == ()


def test_user_config_overrides_and_warns_on_remap(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "idevctl" / "config.yaml",
        """
label: my-host
connect_timeout_s: 2.5
services:
  misagent: com.example.misagent
  debugserver: com.apple.debugserver
""",
    )

    loaded = load_config()

    assert loaded.config.label == "my-host"
    assert loaded.config.connect_timeout_s == 2.5
    assert loaded.config.lockdown_port == 62078
    assert loaded.config.services["misagent"] == "com.example.misagent"
    assert loaded.config.services["debugserver"] == "com.apple.debugserver"
    assert loaded.config.services["installation_proxy"] == "com.apple.mobile.installation_proxy"
    assert len(loaded.warnings) == 1
    assert "misagent" in loaded.warnings[0]


def test_explicit_path_applies_last(tmp_path: Path) -> None:
    _write_config(tmp_path / "cfg" / "idevctl" / "config.yaml", "label: from-user\n")
    explicit = tmp_path / "explicit.yaml"
    _write_config(explicit, "label: from-explicit\nplist_format: binary\n")

    config = load_config(explicit).config

    assert config.label == "from-explicit"
    assert config.plist_format == "binary"


def test_unknown_key_rejected(tmp_path: Path) -> None:
    explicit = tmp_path / "bad.yaml"
    _write_config(explicit, "lockdown_prot: 62078\n")
    with pytest.raises(ConfigValidationError):
        load_config(explicit)


def test_out_of_range_port_rejected(tmp_path: Path) -> None:
    explicit = tmp_path / "bad.yaml"
    _write_config(explicit, "lockdown_port: 70000\n")
    with pytest.raises(ConfigValidationError):
        load_config(explicit)


def test_duplicate_key_rejected(tmp_path: Path) -> None:
    explicit = tmp_path / "dup.yaml"
    _write_config(explicit, "label: one\nlabel: two\n")
    with pytest.raises(ConfigValidationError):
        load_config(explicit)


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    explicit = tmp_path / "list.yaml"
    _write_config(explicit, "- label\n")
    with pytest.raises(ConfigValidationError):
        load_config(explicit)


def test_missing_explicit_file_is_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "nope.yaml")


def test_empty_file_keeps_defaults(tmp_path: Path) -> None:
    explicit = tmp_path / "empty.yaml"
    _write_config(explicit, "")
    assert load_config(explicit).config.label == "idevctl"
