from pathlib import Path

from config import AppConfig


def test_app_settings_read_app_prefixed_variables(monkeypatch, tmp_path):
    monkeypatch.setenv("APP_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("APP_LOG_FILE", str(tmp_path / "pg.log"))
    monkeypatch.setenv("APP_ROW_LIMIT", "250")
    monkeypatch.setenv("APP_STATUS_TTL_SECONDS", "5")
    monkeypatch.setenv("APP_CONFIG_DIR", str(tmp_path / "cfg"))
    monkeypatch.setenv("ROW_LIMIT", "7")

    config = AppConfig()

    assert config.log_level == "DEBUG"
    assert config.log_file == str(tmp_path / "pg.log")
    assert config.row_limit == 250
    assert config.status_ttl_seconds == 5.0
    assert config.config_dir == Path(tmp_path / "cfg")
