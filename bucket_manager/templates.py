"""Template loader for the file manager page."""

import html
import json
from pathlib import Path

_BASE_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"


def _load(name):
    return (_BASE_DIR / name).read_text(encoding="utf-8")


def _render(raw, context):
    out = raw
    for key, value in context.items():
        out = out.replace("{{" + key + "}}", str(value))
    return out


def render_index(title, max_upload_bytes):
    config = {"maxUploadBytes": max_upload_bytes}
    return _render(
        _load("index.html"),
        {
            "title": html.escape(title),
            "config_json": html.escape(json.dumps(config), quote=True),
        },
    )
