# src/tagdrop/scripts/drop_tokens.py
"""
Operational helpers for drop tokens.

Commands:
1. ``new``: print a fresh random drop token
2. ``derive TAG...``: print the drop token printed alongside each tag code
3. ``count TOKEN``: print how many active messages a token holds
4. ``purge``: run one expiry sweep (suitable for cron when the in-app
   scheduler is disabled)
5. ``init-db``: create the drop tables on the configured database
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from tagdrop.db.session import create_tables
from tagdrop.repositories.drop_repo import get_drop_repository
from tagdrop.services.drop_expiry import purge_expired_drop_messages
from tagdrop.services.drop_tokens import DropTokenCodec, get_token_codec


def derive_tokens(codec: DropTokenCodec, tag_codes: list[str]) -> list[tuple[str, str]]:
    """Return ``(tag_code, token)`` pairs for the given tags."""
    return [(tag_code, codec.derive(tag_code)) for tag_code in tag_codes]


def count_active(token: str) -> int:
    """Return the active message count for ``token``; 0 for malformed tokens."""
    codec = get_token_codec()
    if not codec.is_valid_format(token):
        return 0
    return get_drop_repository().count_active(codec.hash(token))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drop token maintenance")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("new", help="Print a fresh random drop token")
    derive = commands.add_parser("derive", help="Print the drop token bound to tag codes")
    derive.add_argument("tag_codes", nargs="+")
    count = commands.add_parser("count", help="Count active messages on a token")
    count.add_argument("token")
    purge = commands.add_parser("purge", help="Delete expired messages once")
    purge.add_argument("--batch-size", type=int, default=None)
    commands.add_parser("init-db", help="Create drop tables")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "new":
        print(DropTokenCodec.generate())
    elif args.command == "derive":
        for tag_code, token in derive_tokens(get_token_codec(), args.tag_codes):
            print(f"{tag_code}\t{token}")
    elif args.command == "count":
        print(count_active(args.token))
    elif args.command == "purge":
        deleted = asyncio.run(
            purge_expired_drop_messages(get_drop_repository(), args.batch_size)
        )
        print(f"Deleted {deleted} expired drop messages")
    elif args.command == "init-db":
        create_tables()
        print("Created drop tables")
    return 0


if __name__ == "__main__":
    sys.exit(main())
