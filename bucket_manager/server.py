"""HTTP front-end: JSON API over the bucket plus the single-page UI."""

import hmac
import json
import logging
import mimetypes
import os
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from bucket_manager import templates
from bucket_manager.errors import (
    AppError,
    BadRequest,
    Conflict,
    InternalError,
    LengthRequired,
    MethodNotAllowed,
    NotFoundError,
    PayloadTooLarge,
    Unauthorized,
)
from bucket_manager.mover import Mover
from bucket_manager.notify import Event, NullNotifier, build_notifier
from bucket_manager.paths import is_folder, rename_target
from bucket_manager.routes import build_routes
from bucket_manager.store import S3Store, build_s3_client

logger = logging.getLogger(__name__)

AUTH_HEADER = "x-auth-password"
MAX_JSON_BODY = 1024 * 1024
CACHE_CONTROL = "public, max-age=259200"


class FileManagerServer(ThreadingHTTPServer):
    def __init__(self, address, settings, store, notifier=None):
        super().__init__(address, FileManagerHandler)
        self.settings = settings
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.mover = Mover(store, self.notifier, workers=settings.move_workers)
        self.routes = build_routes()

    def server_close(self):
        self.notifier.close()
        super().server_close()


class FileManagerHandler(BaseHTTPRequestHandler):
    server: FileManagerServer
    server_version = "BucketFileManager/1.0"

    # ---------- responses ----------
    def respond_json(self, status, data, headers=None):
        payload = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    def respond_html(self, text):
        payload = text.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def respond_error(self, err):
        headers = {}
        if isinstance(err, MethodNotAllowed):
            headers["Allow"] = ", ".join(err.allowed)
        if not self.discard_body():
            self.close_connection = True
            headers["Connection"] = "close"
        self.respond_json(err.status, err.to_json(), headers)

    def log_message(self, format, *args):
        logger.info("%s %s", self.address_string(), format % args)

    # ---------- request helpers ----------
    def require_auth(self):
        expected = self.server.settings.auth_password
        provided = self.headers.get(AUTH_HEADER) or ""
        if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
            raise Unauthorized("Invalid Password")

    def discard_body(self):
        """Read an unread small request body; False when it was left unread."""
        if self.body_consumed:
            return True
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            return False
        if length < 0 or length > MAX_JSON_BODY:
            return False
        if length:
            self.rfile.read(length)
        self.body_consumed = True
        return True

    def content_length(self):
        raw = self.headers.get("Content-Length")
        if raw is None:
            raise LengthRequired("Content-Length header is required.")
        try:
            length = int(raw)
        except ValueError:
            raise BadRequest("Invalid Content-Length header.") from None
        if length < 0:
            raise BadRequest("Invalid Content-Length header.")
        return length

    def read_json(self):
        if self.headers.get("Content-Length") is None:
            raise BadRequest("JSON request body is required.")
        length = self.content_length()
        if length > MAX_JSON_BODY:
            raise PayloadTooLarge("Request body too large.")
        body = self.rfile.read(length)
        self.body_consumed = True
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise BadRequest("Invalid JSON format.") from None
        if not isinstance(data, dict):
            raise BadRequest("JSON object expected.")
        return data

    @staticmethod
    def required_str(data, name):
        value = data.get(name)
        if not isinstance(value, str) or not value:
            raise BadRequest(f"{name} is required.")
        return value

    # ---------- dispatch ----------
    def dispatch(self):
        self.body_consumed = False
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path
        is_api = path == "/api" or path.startswith("/api/")
        routes = self.server.routes
        try:
            if is_api:
                self.require_auth()
            found = routes.match(self.command, path, auth=is_api)
            if found is None:
                allowed = routes.allowed_methods(path, auth=is_api)
                if allowed:
                    raise MethodNotAllowed(allowed)
                raise NotFoundError("API endpoint not found." if is_api else "Not found")
            route, params = found
            getattr(self, route.handler)(params, urllib.parse.parse_qs(parsed.query))
        except AppError as err:
            if err.status >= 500:
                logger.error("%s %s failed: %s", self.command, path, err.message)
            self.respond_error(err)
        except Exception:
            logger.exception("%s %s failed", self.command, path)
            self.respond_error(InternalError("Internal server error"))

    do_GET = dispatch
    do_HEAD = dispatch
    do_PUT = dispatch
    do_POST = dispatch
    do_DELETE = dispatch

    # ---------- pages ----------
    def handle_index(self, params, query):
        settings = self.server.settings
        title = settings.bucket or "Bucket File Manager"
        self.respond_html(templates.render_index(title, settings.max_upload_bytes))

    def handle_static(self, params, query):
        static_root = os.path.abspath(templates.STATIC_DIR)
        rel = os.path.normpath(params["path"]).lstrip(os.sep)
        file_path = os.path.abspath(os.path.join(static_root, rel))
        if not file_path.startswith(static_root + os.sep) or not os.path.isfile(file_path):
            # Not a packaged asset: may be a bucket object under "static/".
            return self.handle_download({"key": "static/" + params["path"]}, query)
        content_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
        with open(file_path, "rb") as handle:
            payload = handle.read()
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    def handle_download(self, params, query):
        key = params["key"]
        if is_folder(key):
            raise BadRequest("Cannot download a folder.")
        opened = self.server.store.open(key)
        if opened is None:
            raise NotFoundError("Object Not Found")
        info, chunks = opened
        etag = f'"{info.etag}"' if info.etag else None
        if etag and self.headers.get("If-None-Match") == etag:
            chunks.close()
            self.send_response(304)
            self.send_header("ETag", etag)
            self.send_header("Cache-Control", CACHE_CONTROL)
            self.end_headers()
            return
        content_type = info.content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(info.size))
        if etag:
            self.send_header("ETag", etag)
        self.send_header("Cache-Control", CACHE_CONTROL)
        self.end_headers()
        try:
            if self.command != "HEAD":
                for chunk in chunks:
                    self.wfile.write(chunk)
        finally:
            chunks.close()

    # ---------- api ----------
    def handle_list(self, params, query):
        prefix = query.get("prefix", [""])[0]
        objects = self.server.store.list(prefix=prefix)
        self.respond_json(200, [obj.to_json() for obj in objects])

    def handle_upload(self, params, query):
        settings = self.server.settings
        key = params.get("key", "")
        if not key:
            raise BadRequest("Filename missing.")
        if is_folder(key):
            raise BadRequest("Upload key must not end with '/'.")
        length = self.content_length()
        if length > settings.max_upload_bytes:
            raise PayloadTooLarge(
                f"Upload of {length} bytes exceeds the {settings.max_upload_bytes} byte limit."
            )
        body = self.rfile.read(length)
        self.body_consumed = True
        if len(body) != length:
            raise BadRequest("Request body shorter than Content-Length.")
        content_type = self.headers.get("Content-Type") or mimetypes.guess_type(key)[0]
        self.server.store.put(key, body, content_type=content_type)
        logger.info("Upload key=%s size=%s bucket=%s", key, length, settings.bucket)
        self.server.notifier.publish(Event("uploaded", {"key": key, "size": length}))
        self.respond_json(201, {"key": key, "size": length})

    def handle_delete(self, params, query):
        data = self.read_json()
        keys = data.get("keys")
        if not isinstance(keys, list) or not keys:
            raise BadRequest("Keys array is required.")
        if not all(isinstance(k, str) and k for k in keys):
            raise BadRequest("Keys must be non-empty strings.")
        store = self.server.store
        targets = []
        for key in keys:
            if is_folder(key):
                targets.extend(obj.key for obj in store.list(prefix=key))
            targets.append(key)
        targets = list(dict.fromkeys(targets))
        store.delete(targets)
        logger.info("Delete count=%s requested=%s bucket=%s", len(targets), len(keys), self.server.settings.bucket)
        self.respond_json(200, {"deleted": len(targets)})

    def handle_create_folder(self, params, query):
        data = self.read_json()
        name = data.get("folderName")
        if not isinstance(name, str) or not name.strip():
            raise BadRequest("folderName is required.")
        name = name.strip()
        if "/" in name:
            raise BadRequest("Folder name must not contain '/'.")
        prefix = data.get("prefix") or ""
        if not isinstance(prefix, str) or (prefix and not is_folder(prefix)):
            raise BadRequest("prefix must be empty or end with '/'.")
        key = prefix + name + "/"
        store = self.server.store
        if store.head(key) is not None:
            raise Conflict(f"Folder already exists: {key}")
        store.put(key, b"")
        logger.info("Create folder key=%s bucket=%s", key, self.server.settings.bucket)
        self.respond_json(201, {"key": key})

    def handle_move(self, params, query):
        data = self.read_json()
        old_key = self.required_str(data, "oldKey")
        new_key = self.required_str(data, "newKey")
        result = self.server.mover.move(old_key, new_key)
        self.respond_json(200, result.to_json())

    def handle_rename(self, params, query):
        data = self.read_json()
        old_key = self.required_str(data, "oldKey")
        if isinstance(data.get("newKey"), str) and data["newKey"]:
            new_key = data["newKey"]
        else:
            new_key = rename_target(old_key, self.required_str(data, "newName").strip())
        result = self.server.mover.move(old_key, new_key)
        self.respond_json(200, result.to_json())


def create_server(settings, store=None, notifier=None, address=None):
    if store is None:
        store = S3Store(build_s3_client(settings), settings.bucket)
    if notifier is None:
        notifier = build_notifier(settings)
    address = address or (settings.host, settings.port)
    return FileManagerServer(address, settings, store, notifier)


def serve(settings):
    if not settings.bucket:
        logger.error("No bucket configured; set S3FM_BUCKET or run 'bucket-manager configure'.")
        return 2
    if not settings.auth_password:
        logger.warning("No auth password configured; every /api request will be rejected.")
    try:
        httpd = create_server(settings)
    except OSError as e:
        logger.error("Server failed to start on port %s: %s", settings.port, e)
        return 1
    with httpd:
        logger.info("Serving bucket %s on port %s (HTTP)", settings.bucket, httpd.server_address[1])
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down")
    return 0
