import json
import logging
import os
import sys
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken

FALLBACK_DIR = "/tmp/s3-file-manager"
CONFIG_NAME = "app_config.json"
SECRET_NAME = "secret.key"
ENCRYPTED_FIELDS = ("access_key", "secret_key", "auth_password", "telegram_token")

# config file field -> (environment variable, default)
FIELDS = {
    "host": ("S3FM_HOST", ""),
    "port": ("S3FM_PORT", "8080"),
    "bucket": ("S3FM_BUCKET", ""),
    "endpoint_url": ("S3FM_ENDPOINT_URL", ""),
    "region": ("S3FM_REGION", "us-east-1"),
    "access_key": ("S3FM_ACCESS_KEY", ""),
    "secret_key": ("S3FM_SECRET_KEY", ""),
    "auth_password": ("S3FM_AUTH_PASSWORD", ""),
    "max_upload_mb": ("S3FM_MAX_UPLOAD_MB", "100"),
    "move_workers": ("S3FM_MOVE_WORKERS", "8"),
    "store_timeout": ("S3FM_STORE_TIMEOUT", "30"),
    "telegram_token": ("S3FM_TELEGRAM_TOKEN", ""),
    "telegram_chat_id": ("S3FM_TELEGRAM_CHAT_ID", ""),
    "log_level": ("S3FM_LOG_LEVEL", "INFO"),
}


@dataclass(frozen=True)
class Settings:
    config_dir: str
    host: str = ""
    port: int = 8080
    bucket: str = ""
    endpoint_url: str = ""
    region: str = "us-east-1"
    access_key: str = ""
    secret_key: str = ""
    auth_password: str = ""
    max_upload_bytes: int = 100 * 1024 * 1024
    move_workers: int = 8
    store_timeout: float = 30.0
    telegram_token: str = ""
    telegram_chat_id: str = ""
    log_level: str = "INFO"

    @property
    def log_file(self):
        return os.path.join(self.config_dir, "logs", "app.log")


def resolve_config_dir():
    env_dir = os.getenv("S3FM_CONFIG_DIR")
    if env_dir:
        return env_dir
    default_dir = os.path.join(os.path.expanduser("~"), ".s3-file-manager")
    try:
        os.makedirs(default_dir, exist_ok=True)
        if os.access(default_dir, os.W_OK | os.X_OK):
            return default_dir
    except OSError:
        pass
    return FALLBACK_DIR


# ENCRYPTION
def load_or_create_secret(config_dir):
    secret_file = os.path.join(config_dir, SECRET_NAME)
    if os.path.exists(secret_file):
        with open(secret_file, "rb") as f:
            return f.read()
    key = Fernet.generate_key()
    os.makedirs(config_dir, exist_ok=True)
    with open(secret_file, "wb") as f:
        f.write(key)
    os.chmod(secret_file, 0o600)
    return key


def encrypt(fernet, text):
    return fernet.encrypt(text.encode()).decode()


def decrypt(fernet, token):
    try:
        return fernet.decrypt(token.encode()).decode()
    except (InvalidToken, ValueError):
        # Values saved before encryption was introduced are plain text.
        return token


# ---------- CONFIG FILE ----------
def load_config(config_dir):
    path = os.path.join(config_dir, CONFIG_NAME)
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        logging.exception("Unreadable config file %s", path)
        return {}
    return data if isinstance(data, dict) else {}


def _load_decrypted(config_dir):
    cfg = load_config(config_dir)
    if any(cfg.get(name) for name in ENCRYPTED_FIELDS):
        fernet = Fernet(load_or_create_secret(config_dir))
        for name in ENCRYPTED_FIELDS:
            if cfg.get(name):
                cfg[name] = decrypt(fernet, str(cfg[name]))
    return cfg


def _write_json(path, data):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def save_config(config_dir, cfg):
    """Write ``cfg`` with secrets encrypted and return the path written.

    Falls back to ``/tmp/s3-file-manager`` when ``config_dir`` is not
    writable.
    """
    try:
        key = load_or_create_secret(config_dir)
    except OSError:
        config_dir = FALLBACK_DIR
        key = load_or_create_secret(config_dir)
    fernet = Fernet(key)
    data = dict(cfg)
    for name in ENCRYPTED_FIELDS:
        if data.get(name):
            data[name] = encrypt(fernet, data[name])
    path = os.path.join(config_dir, CONFIG_NAME)
    try:
        _write_json(path, data)
        return path
    except OSError as e:
        logging.warning("Unable to save config to %s: %s", path, e)
    fallback_secret = os.path.join(FALLBACK_DIR, SECRET_NAME)
    os.makedirs(FALLBACK_DIR, exist_ok=True)
    with open(fallback_secret, "wb") as f:
        f.write(key)
    path = os.path.join(FALLBACK_DIR, CONFIG_NAME)
    _write_json(path, data)
    return path


def update_config(config_dir, **values):
    """Merge non-empty ``values`` into the stored config and save it."""
    cfg = _load_decrypted(config_dir)
    for name, value in values.items():
        if name not in FIELDS:
            raise KeyError(f"Unknown config field: {name}")
        if value is not None and str(value) != "":
            cfg[name] = value
    return save_config(config_dir, cfg)


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def load_settings(config_dir=None, environ=None):
    environ = os.environ if environ is None else environ
    config_dir = config_dir or resolve_config_dir()
    stored = _load_decrypted(config_dir)

    raw = {}
    for name, (env_name, default) in FIELDS.items():
        value = environ.get(env_name)
        if value is None or not str(value).strip():
            value = stored.get(name, default)
        raw[name] = str(value).strip() if value is not None else default

    return Settings(
        config_dir=config_dir,
        host=raw["host"],
        port=_as_int(raw["port"], 8080),
        bucket=raw["bucket"],
        endpoint_url=raw["endpoint_url"],
        region=raw["region"],
        access_key=raw["access_key"],
        secret_key=raw["secret_key"],
        auth_password=raw["auth_password"],
        max_upload_bytes=_as_int(raw["max_upload_mb"], 100) * 1024 * 1024,
        move_workers=max(1, _as_int(raw["move_workers"], 8)),
        store_timeout=_as_float(raw["store_timeout"], 30.0),
        telegram_token=raw["telegram_token"],
        telegram_chat_id=raw["telegram_chat_id"],
        log_level=raw["log_level"].upper() or "INFO",
    )


def setup_logging(settings):
    log_dir = os.path.dirname(settings.log_file)
    handlers = [logging.StreamHandler(sys.stdout)]
    try:
        os.makedirs(log_dir, exist_ok=True)
        handlers.insert(0, logging.FileHandler(settings.log_file, encoding="utf-8"))
    except OSError as e:
        print(f"File logging disabled ({log_dir}): {e}", file=sys.stderr)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
    )
