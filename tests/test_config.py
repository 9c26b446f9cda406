import json
import os

from bucket_manager.config import (
    CONFIG_NAME,
    Settings,
    load_config,
    load_settings,
    resolve_config_dir,
    update_config,
)


def test_defaults(tmp_path):
    settings = load_settings(str(tmp_path), environ={})
    assert settings == Settings(config_dir=str(tmp_path))
    assert settings.max_upload_bytes == 100 * 1024 * 1024
    assert settings.log_file == os.path.join(str(tmp_path), "logs", "app.log")


def test_secrets_are_encrypted_at_rest(tmp_path):
    update_config(str(tmp_path), bucket="photos", secret_key="AWS-SECRET", auth_password="hunter2")

    raw = (tmp_path / CONFIG_NAME).read_text(encoding="utf-8")
    assert "photos" in raw
    assert "AWS-SECRET" not in raw
    assert "hunter2" not in raw
    assert (tmp_path / "secret.key").exists()

    settings = load_settings(str(tmp_path), environ={})
    assert settings.bucket == "photos"
    assert settings.secret_key == "AWS-SECRET"
    assert settings.auth_password == "hunter2"


def test_update_merges_with_existing(tmp_path):
    update_config(str(tmp_path), bucket="photos", auth_password="one")
    update_config(str(tmp_path), region="eu-west-1", auth_password=None)

    settings = load_settings(str(tmp_path), environ={})
    assert settings.bucket == "photos"
    assert settings.region == "eu-west-1"
    assert settings.auth_password == "one"


def test_environment_overrides_file(tmp_path):
    update_config(str(tmp_path), bucket="from-file", max_upload_mb=5)
    settings = load_settings(
        str(tmp_path),
        environ={"S3FM_BUCKET": "from-env", "S3FM_PORT": "9000", "S3FM_MOVE_WORKERS": "16", "S3FM_REGION": "  "},
    )
    assert settings.bucket == "from-env"
    assert settings.port == 9000
    assert settings.move_workers == 16
    assert settings.region == "us-east-1"
    assert settings.max_upload_bytes == 5 * 1024 * 1024


def test_plain_text_values_are_accepted(tmp_path):
    (tmp_path / CONFIG_NAME).write_text(json.dumps({"auth_password": "legacy"}), encoding="utf-8")
    assert load_settings(str(tmp_path), environ={}).auth_password == "legacy"


def test_invalid_numbers_fall_back(tmp_path):
    settings = load_settings(
        str(tmp_path),
        environ={"S3FM_PORT": "eighty", "S3FM_MAX_UPLOAD_MB": "lots", "S3FM_STORE_TIMEOUT": "soon", "S3FM_MOVE_WORKERS": "0"},
    )
    assert settings.port == 8080
    assert settings.max_upload_bytes == 100 * 1024 * 1024
    assert settings.store_timeout == 30.0
    assert settings.move_workers == 1


def test_unreadable_config_is_ignored(tmp_path):
    (tmp_path / CONFIG_NAME).write_text("{not json", encoding="utf-8")
    assert load_config(str(tmp_path)) == {}
    (tmp_path / CONFIG_NAME).write_text("[1, 2]", encoding="utf-8")
    assert load_config(str(tmp_path)) == {}


def test_resolve_config_dir_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("S3FM_CONFIG_DIR", str(tmp_path / "cfg"))
    assert resolve_config_dir() == str(tmp_path / "cfg")
