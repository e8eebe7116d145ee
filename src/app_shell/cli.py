import argparse
import logging
import sys

import uvicorn

from src.adapters.clock import SystemClock
from src.adapters.demo_codes import DemoCodeAllowList
from src.api.deps import Settings, build_kv_store
from src.components.invite import CreateInviteInput, ValidateInviteInput, run_create, run_validate
from src.domain.entities import UserProfile
from src.domain.policy import Caller, PolicyEngine
from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger("cli")

CLI_ISSUER = "cli"


def get_rules(settings: Settings) -> Rules:
    try:
        return load_rules(settings.rules_path)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Cannot load rules: %s", e)
        sys.exit(1)


def handle_serve(settings: Settings, args: argparse.Namespace) -> None:
    uvicorn.run("src.api.main:app", host=args.host, port=args.port, reload=args.reload)


def handle_create_invite(settings: Settings, args: argparse.Namespace) -> None:
    """Create an invite directly in the store, e.g. to bootstrap the first administrator."""
    rules = get_rules(settings)
    store = build_kv_store(settings)
    # Operator on the host acts with administrator rights.
    operator = Caller(subject_id=CLI_ISSUER, profile=UserProfile(id=CLI_ISSUER, role="admin"))

    result = run_create(
        CreateInviteInput(
            caller=operator,
            code=args.code,
            kind=args.type,
            role=args.role,
            expiry_days=args.expiry_days,
        ),
        store,
        PolicyEngine(rules.rbac),
        SystemClock(),
        rules.invites,
    )
    if not result.success or result.invite is None:
        logger.error("Invite not created: %s", result.error)
        sys.exit(1)

    invite = result.invite
    print(f"Invite {invite.code} created ({invite.kind}, role '{invite.role}').")
    print(f"Expires: {invite.expires_at.isoformat()}")


def handle_validate_invite(settings: Settings, args: argparse.Namespace) -> None:
    rules = get_rules(settings)
    result = run_validate(
        ValidateInviteInput(code=args.code),
        build_kv_store(settings),
        DemoCodeAllowList.from_rules(rules.invites.demo_codes),
        SystemClock(),
    )
    if not result.valid:
        print(f"Invalid: {result.reason}")
        sys.exit(2)

    assert result.invite is not None
    suffix = " (demo)" if result.virtual else ""
    print(f"Valid{suffix}: {result.invite.kind}, role '{result.invite.role}', used {len(result.invite.used_by)} times")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Invite Inbox CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    # create-invite
    create_parser = subparsers.add_parser("create-invite", help="Create an invite code")
    create_parser.add_argument("--code", help="Code to use (generated if omitted)")
    create_parser.add_argument("--type", choices=["single", "multi"], default="single")
    create_parser.add_argument("--role", choices=["user", "admin"], default="user")
    create_parser.add_argument("--expiry-days", type=int, default=None)

    # validate-invite
    validate_parser = subparsers.add_parser("validate-invite", help="Check a code without using it")
    validate_parser.add_argument("code")

    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    settings = Settings()

    if args.command == "serve":
        handle_serve(settings, args)
    elif args.command == "create-invite":
        handle_create_invite(settings, args)
    elif args.command == "validate-invite":
        handle_validate_invite(settings, args)


if __name__ == "__main__":
    main()
