import argparse
import dataclasses
import getpass
import sys

from bucket_manager.config import load_settings, resolve_config_dir, setup_logging, update_config
from bucket_manager.server import serve


def build_parser():
    parser = argparse.ArgumentParser(prog="bucket-manager", description="Browser file manager for an S3 bucket.")
    parser.add_argument("--config-dir", default=None, help="Directory holding app_config.json and secret.key")
    sub = parser.add_subparsers(dest="command")

    serve_cmd = sub.add_parser("serve", help="Run the HTTP server (default)")
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.add_argument("--host", default=None)

    configure = sub.add_parser("configure", help="Save bucket, credentials and password to the config file")
    configure.add_argument("--bucket")
    configure.add_argument("--endpoint-url")
    configure.add_argument("--region")
    configure.add_argument("--access-key")
    configure.add_argument("--secret-key")
    configure.add_argument("--password", help="Shared secret for the x-auth-password header (prompted when '-')")
    configure.add_argument("--max-upload-mb", type=int)
    configure.add_argument("--telegram-token")
    configure.add_argument("--telegram-chat-id")
    return parser


def run_configure(args, config_dir):
    password = args.password
    if password == "-":
        password = getpass.getpass("Password: ")
    path = update_config(
        config_dir,
        bucket=args.bucket,
        endpoint_url=args.endpoint_url,
        region=args.region,
        access_key=args.access_key,
        secret_key=args.secret_key,
        auth_password=password,
        max_upload_mb=args.max_upload_mb,
        telegram_token=args.telegram_token,
        telegram_chat_id=args.telegram_chat_id,
    )
    print(f"Saved configuration to {path}")
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    config_dir = args.config_dir or resolve_config_dir()
    if args.command == "configure":
        return run_configure(args, config_dir)

    settings = load_settings(config_dir)
    overrides = {}
    if getattr(args, "port", None) is not None:
        overrides["port"] = args.port
    if getattr(args, "host", None) is not None:
        overrides["host"] = args.host
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    setup_logging(settings)
    return serve(settings)


if __name__ == "__main__":
    sys.exit(main())
