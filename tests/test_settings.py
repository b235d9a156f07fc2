from pathlib import Path

from liveedit.settings import AppSettings, load_settings


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("LIVEEDIT_ROOT", str(tmp_path))
    monkeypatch.delenv("LIVEEDIT_PORT", raising=False)
    monkeypatch.delenv("LIVEEDIT_LOG_LEVEL", raising=False)

    settings = load_settings()

    assert settings.port == 8400
    assert settings.write_timeout == 5.0
    assert settings.document_path == tmp_path / ".liveedit.config.json"


def test_yaml_file_and_env_overrides(tmp_path, monkeypatch):
    (tmp_path / "liveedit.yaml").write_text(
        "port: 9000\nwrite_timeout: 2.5\nconfig_path: data/doc.json\n", encoding="utf-8",
    )
    monkeypatch.setenv("LIVEEDIT_ROOT", str(tmp_path))
    monkeypatch.setenv("LIVEEDIT_LOG_LEVEL", "debug")
    monkeypatch.delenv("LIVEEDIT_PORT", raising=False)

    settings = load_settings()

    assert settings.port == 9000
    assert settings.write_timeout == 2.5
    assert settings.log_level == "debug"
    assert settings.document_path == tmp_path / "data" / "doc.json"

    monkeypatch.setenv("LIVEEDIT_PORT", "9100")
    assert load_settings().port == 9100


def test_absolute_paths_are_kept(tmp_path):
    settings = AppSettings(root="/ignored", default_config_path=str(tmp_path / "default.json"))
    assert settings.default_document_path == tmp_path / "default.json"
    assert settings.document_path == Path("/ignored") / ".liveedit.config.json"
