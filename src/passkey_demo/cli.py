"""passkey-demo operator CLI.

Provides ``passkey-demo`` console script and ``python -m passkey_demo`` entry point.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from alembic import command as alembic_command
from sqlalchemy import text

from passkey_demo.config import Settings
from passkey_demo.db.migrations.runtime import (
    PackagedMigrationsError,
    alembic_config,
    create_sync_engine,
    get_schema_status,
    normalize_db_url_for_sync,
    packaged_migrations_dir,
    run_upgrade_to_head,
    stamp_head,
)
from passkey_demo.db.session import Database
from passkey_demo.errors import StorageUnavailable
from passkey_demo.passkeys.challenges import ChallengeStore
from passkey_demo.passkeys.credentials import CredentialStore

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_BAD_ARGS = 2
EXIT_STORAGE_UNAVAILABLE = 3
EXIT_MIGRATIONS_MISSING = 4
EXIT_STAMP_REQUIRED = 5


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _output(data: Any, *, fmt: str = "json", pretty: bool = False) -> None:
    if fmt == "jsonl":
        if isinstance(data, list):
            for item in data:
                print(json.dumps(item, default=str))
        else:
            print(json.dumps(data, default=str))
    else:
        indent = 2 if pretty else None
        print(json.dumps(data, default=str, indent=indent))


def _err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _require_yes(args: argparse.Namespace) -> bool:
    if not getattr(args, "yes", False):
        _err("--yes is required for mutating commands")
        return False
    return True


def _passkey_dict(cred: Any) -> dict:
    """Serialize a PasskeyCredential to a safe dict (no public_key)."""
    return {
        "id": cred.id,
        "user_id": cred.user_id,
        "credential_id": cred.credential_id,
        "sign_count": cred.sign_count,
        "device_type": cred.device_type,
        "backed_up": cred.backed_up,
        "aaguid": cred.aaguid,
        "transports": json.loads(cred.transports) if cred.transports else None,
        "active": cred.active,
        "created_at": _iso(cred.created_at),
        "last_used_at": _iso(cred.last_used_at),
        "deactivated_at": _iso(cred.deactivated_at),
    }


def _get_db_url(args: argparse.Namespace) -> str:
    """Resolve the database URL from --db flag or environment."""
    if getattr(args, "db", None):
        return str(args.db)
    return os.environ.get("PASSKEY_DEMO_DATABASE_URL", "sqlite:///./passkey_demo.db")


def _run_with_db(args: argparse.Namespace, fn: Callable[[Database], Awaitable[int]]) -> int:
    """Open a storage handle for *fn*, translate storage failures to an exit code."""
    settings = Settings(database_url=_get_db_url(args))

    async def _run() -> int:
        db = Database.from_settings(settings)
        try:
            return await fn(db)
        finally:
            await db.dispose()

    try:
        return asyncio.run(_run())
    except StorageUnavailable as exc:
        _err(f"storage unavailable: {exc.message}")
        return EXIT_STORAGE_UNAVAILABLE


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------


def _cmd_db_ping(args: argparse.Namespace) -> int:
    url = normalize_db_url_for_sync(_get_db_url(args))
    engine = create_sync_engine(url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        try:
            status = get_schema_status(url)
        except PackagedMigrationsError:
            _err("packaged migrations not found; installation may be broken")
            return EXIT_MIGRATIONS_MISSING
        _output(
            {
                "ok": True,
                "schema_state": status.state,
                "current_revisions": list(status.current_revisions),
                "head_revisions": list(status.head_revisions),
                "warning": status.warning,
            },
            fmt=args.format,
            pretty=args.pretty,
        )
        return EXIT_OK
    finally:
        engine.dispose()


def _cmd_db_migrate_upgrade(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    url = normalize_db_url_for_sync(_get_db_url(args))
    revision = getattr(args, "to", "head")
    try:
        if revision == "head":
            status = run_upgrade_to_head(url)
            if status.state == "stamp_required":
                _err(status.warning or "database must be stamped before upgrading")
                return EXIT_STAMP_REQUIRED
        else:
            with packaged_migrations_dir() as migrations_path:
                alembic_command.upgrade(alembic_config(url, migrations_path), revision)
        _output({"ok": True, "revision": revision}, fmt=args.format, pretty=args.pretty)
        return EXIT_OK
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING


def _cmd_db_migrate_stamp(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    url = normalize_db_url_for_sync(_get_db_url(args))
    try:
        status = stamp_head(url)
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING
    _output(
        {"ok": True, "schema_state": status.state, "revisions": list(status.current_revisions)},
        fmt=args.format,
        pretty=args.pretty,
    )
    return EXIT_OK


def _cmd_db_migrate_current(args: argparse.Namespace) -> int:
    url = normalize_db_url_for_sync(_get_db_url(args))
    try:
        with packaged_migrations_dir() as migrations_path:
            alembic_command.current(alembic_config(url, migrations_path))
        return EXIT_OK
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING


def _cmd_db_migrate_heads(args: argparse.Namespace) -> int:
    url = normalize_db_url_for_sync(_get_db_url(args))
    try:
        with packaged_migrations_dir() as migrations_path:
            alembic_command.heads(alembic_config(url, migrations_path))
        return EXIT_OK
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING


# ---------------------------------------------------------------------------
# Passkeys commands
# ---------------------------------------------------------------------------


def _cmd_passkeys_list(args: argparse.Namespace) -> int:
    async def _list(db: Database) -> int:
        creds = await CredentialStore(db).list_by_user(args.user_id)
        _output([_passkey_dict(c) for c in creds], fmt=args.format, pretty=args.pretty)
        return EXIT_OK

    return _run_with_db(args, _list)


def _cmd_passkeys_show(args: argparse.Namespace) -> int:
    async def _show(db: Database) -> int:
        cred = await CredentialStore(db).find_by_credential_id(args.credential_id)
        if cred is None:
            _err("passkey not found")
            return EXIT_NOT_FOUND
        _output(_passkey_dict(cred), fmt=args.format, pretty=args.pretty)
        return EXIT_OK

    return _run_with_db(args, _show)


def _cmd_passkeys_deactivate(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    async def _deactivate(db: Database) -> int:
        if not await CredentialStore(db).deactivate(args.credential_id):
            _err("passkey not found")
            return EXIT_NOT_FOUND
        _output(
            {"ok": True, "credential_id": args.credential_id, "active": False},
            fmt=args.format,
            pretty=args.pretty,
        )
        return EXIT_OK

    return _run_with_db(args, _deactivate)


# ---------------------------------------------------------------------------
# Challenges commands
# ---------------------------------------------------------------------------


def _cmd_challenges_purge(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    async def _purge(db: Database) -> int:
        store = ChallengeStore(db, ttl_seconds=Settings().challenge_ttl_seconds)
        purged = await store.purge_expired()
        _output({"ok": True, "purged": purged}, fmt=args.format, pretty=args.pretty)
        return EXIT_OK

    return _run_with_db(args, _purge)


# ---------------------------------------------------------------------------
# Argument parser construction
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    # Common flags shared by all leaf subcommands
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", default=None, help="Database URL override")
    common.add_argument(
        "--format", choices=["json", "jsonl"], default="json", help="Output format"
    )
    common.add_argument("--pretty", action="store_true", default=False, help="Pretty-print output")

    parser = argparse.ArgumentParser(
        prog="passkey-demo",
        description="passkey-demo operator CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ---- db ----
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_sub = db_parser.add_subparsers(dest="db_command")

    db_sub.add_parser("ping", parents=[common], help="Check database connectivity")

    db_migrate = db_sub.add_parser("migrate", help="Run Alembic migrations")
    migrate_sub = db_migrate.add_subparsers(dest="migrate_command")

    mig_upgrade = migrate_sub.add_parser("upgrade", parents=[common], help="Upgrade database")
    mig_upgrade.add_argument("--to", default="head", help="Target revision (default: head)")
    mig_upgrade.add_argument("--yes", action="store_true", help="Confirm mutation")

    mig_stamp = migrate_sub.add_parser(
        "stamp", parents=[common], help="Mark an existing schema as being at head"
    )
    mig_stamp.add_argument("--yes", action="store_true", help="Confirm mutation")

    migrate_sub.add_parser("current", parents=[common], help="Show current revision")
    migrate_sub.add_parser("heads", parents=[common], help="Show head revisions")

    # ---- passkeys ----
    passkeys_parser = subparsers.add_parser("passkeys", help="Passkey management")
    passkeys_sub = passkeys_parser.add_subparsers(dest="passkeys_command")

    passkeys_list = passkeys_sub.add_parser(
        "list", parents=[common], help="List active passkeys for a user"
    )
    passkeys_list.add_argument("--user-id", required=True, help="User ID (u...)")

    passkeys_show = passkeys_sub.add_parser(
        "show", parents=[common], help="Show an active passkey"
    )
    passkeys_show.add_argument("--credential-id", required=True, help="Credential ID (base64url)")

    passkeys_deactivate = passkeys_sub.add_parser(
        "deactivate", parents=[common], help="Deactivate a passkey"
    )
    passkeys_deactivate.add_argument(
        "--credential-id", required=True, help="Credential ID (base64url)"
    )
    passkeys_deactivate.add_argument("--yes", action="store_true", help="Confirm mutation")

    # ---- challenges ----
    challenges_parser = subparsers.add_parser("challenges", help="Challenge housekeeping")
    challenges_sub = challenges_parser.add_subparsers(dest="challenges_command")

    challenges_purge = challenges_sub.add_parser(
        "purge", parents=[common], help="Delete expired challenges"
    )
    challenges_purge.add_argument("--yes", action="store_true", help="Confirm mutation")

    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns an integer exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_BAD_ARGS

    # -- db --
    if args.command == "db":
        db_cmd = getattr(args, "db_command", None)
        if db_cmd == "ping":
            return _cmd_db_ping(args)
        if db_cmd == "migrate":
            migrate_cmd = getattr(args, "migrate_command", None)
            if migrate_cmd == "upgrade":
                return _cmd_db_migrate_upgrade(args)
            if migrate_cmd == "stamp":
                return _cmd_db_migrate_stamp(args)
            if migrate_cmd == "current":
                return _cmd_db_migrate_current(args)
            if migrate_cmd == "heads":
                return _cmd_db_migrate_heads(args)
            parser.parse_args(["db", "migrate", "--help"])
            return EXIT_BAD_ARGS
        parser.parse_args(["db", "--help"])
        return EXIT_BAD_ARGS

    # -- passkeys --
    if args.command == "passkeys":
        passkeys_cmd = getattr(args, "passkeys_command", None)
        if passkeys_cmd == "list":
            return _cmd_passkeys_list(args)
        if passkeys_cmd == "show":
            return _cmd_passkeys_show(args)
        if passkeys_cmd == "deactivate":
            return _cmd_passkeys_deactivate(args)
        parser.parse_args(["passkeys", "--help"])
        return EXIT_BAD_ARGS

    # -- challenges --
    if args.command == "challenges":
        if getattr(args, "challenges_command", None) == "purge":
            return _cmd_challenges_purge(args)
        parser.parse_args(["challenges", "--help"])
        return EXIT_BAD_ARGS

    parser.print_help()
    return EXIT_BAD_ARGS
