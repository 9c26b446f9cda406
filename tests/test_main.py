from bucket_manager.__main__ import build_parser, main
from bucket_manager.config import load_settings


def test_configure_writes_settings(tmp_path, capsys):
    code = main(
        [
            "--config-dir", str(tmp_path),
            "configure",
            "--bucket", "media",
            "--endpoint-url", "https://account.r2.cloudflarestorage.com",
            "--access-key", "AKIA",
            "--secret-key", "SECRET",
            "--password", "letmein",
            "--max-upload-mb", "50",
        ]
    )

    assert code == 0
    assert "Saved configuration" in capsys.readouterr().out
    settings = load_settings(str(tmp_path), environ={})
    assert settings.bucket == "media"
    assert settings.endpoint_url == "https://account.r2.cloudflarestorage.com"
    assert settings.access_key == "AKIA"
    assert settings.auth_password == "letmein"
    assert settings.max_upload_bytes == 50 * 1024 * 1024


def test_serve_options_parse():
    args = build_parser().parse_args(["serve", "--port", "9001", "--host", "127.0.0.1"])
    assert (args.command, args.port, args.host) == ("serve", 9001, "127.0.0.1")
