from __future__ import annotations

import argparse

from automaton.core.errors import AutomatonError
from automaton.core.migration.cli import add_common_args, add_key_args, build_services, read_key, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Automaton backup restore (dry-run by default)")
    ap.add_argument("backup_path")
    ap.add_argument(
        "--category",
        action="append",
        default=None,
        choices=["identity", "secrets", "memory", "soul", "skills", "all"],
        help="Restrict the restore to these categories (repeatable, default: all)",
    )
    ap.add_argument("--apply", action="store_true", help="Apply restore (overwrites files).")
    add_common_args(ap)
    add_key_args(ap)
    args = ap.parse_args()

    svc, _ = build_services(args.root)
    key = read_key(args.key_env, args.ask_key, prompt="Decryption key: ")
    try:
        res = svc.restore_backup(args.backup_path, categories=args.category, dry_run=not args.apply, decryption_key=key)
    except AutomatonError as e:
        print(to_json(e.to_dict()))
        return 2
    print(to_json(res))
    return 0 if not res.errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
