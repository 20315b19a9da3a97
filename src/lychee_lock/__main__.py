# LycheeLock - Command Line Tools
#
# Developer and operator helpers around the vault primitives:
#   enroll  - create a TOTP secret, print its URI, optionally write a QR PNG
#   code    - print the current code for a secret
#   verify  - check a code against a secret
#   salt    - print a fresh base64 account salt

import argparse
import base64
import sys
from pathlib import Path

from . import __version__
from .core.config import Settings
from .vault.encryption import encode_for_storage, generate_salt
from .vault.totp import TotpEngine


def _cmd_enroll(args, engine: TotpEngine) -> int:
    secret = engine.generate_secret()
    uri = engine.provisioning_uri(args.username, secret, issuer=args.issuer)
    print(f"Secret: {secret}")
    print(f"URI:    {uri}")

    if args.qr_out:
        data_url = engine.render_qr(uri)
        png = base64.b64decode(data_url.split(",", 1)[1])
        Path(args.qr_out).write_bytes(png)
        print(f"QR code written to {args.qr_out}")
    return 0


def _cmd_code(args, engine: TotpEngine) -> int:
    print(engine.generate_code(args.secret))
    return 0


def _cmd_verify(args, engine: TotpEngine) -> int:
    if engine.verify_code(args.code, args.secret, window=args.window):
        print("OK")
        return 0
    print("INVALID")
    return 1


def _cmd_salt(args, engine: TotpEngine) -> int:
    print(encode_for_storage(generate_salt()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lychee-lock",
        description="LycheeLock vault tools (TOTP enrollment, codes, salts)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"LycheeLock v{__version__}"
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Load settings from this .env file"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    enroll = sub.add_parser("enroll", help="Create a TOTP secret for an account")
    enroll.add_argument("--username", required=True)
    enroll.add_argument("--issuer", default=None, help="Override LYCHEE_TOTP_ISSUER")
    enroll.add_argument("--qr-out", default=None, help="Write the QR code PNG here")
    enroll.set_defaults(handler=_cmd_enroll)

    code = sub.add_parser("code", help="Print the current code for a secret")
    code.add_argument("--secret", required=True)
    code.set_defaults(handler=_cmd_code)

    verify = sub.add_parser("verify", help="Verify a code against a secret")
    verify.add_argument("--secret", required=True)
    verify.add_argument("--code", required=True)
    verify.add_argument("--window", type=int, default=None)
    verify.set_defaults(handler=_cmd_verify)

    salt = sub.add_parser("salt", help="Print a fresh base64 account salt")
    salt.set_defaults(handler=_cmd_salt)

    return parser


def main(argv=None) -> int:
    """Entry point for the ``lychee-lock`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env(args.env_file)
        engine = TotpEngine(issuer=settings.totp_issuer, window=settings.totp_window)
        return args.handler(args, engine)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
