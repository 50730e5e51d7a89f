from __future__ import annotations

import argparse

from automaton.core.errors import AutomatonError
from automaton.core.migration.cli import add_common_args, add_key_args, build_services, read_key, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Automaton backup create")
    ap.add_argument("type", nargs="?", default="full", choices=["full", "incremental"])
    ap.add_argument("--sandbox-id", default=None, help="Source sandbox id (defaults to automaton.json sandboxId)")
    ap.add_argument("--path", default=None, help="Output directory (defaults to <root>/backups)")
    ap.add_argument("--encrypt", action="append", default=[], help="Also encrypt this category (repeatable)")
    ap.add_argument("--keep", type=int, default=None, help="Prune to this many backups afterwards")
    add_common_args(ap)
    add_key_args(ap)
    args = ap.parse_args()

    svc, _ = build_services(args.root)
    key = read_key(args.key_env, args.ask_key, prompt="Encryption key: ", confirm=True)
    try:
        info = svc.create_backup(
            args.sandbox_id,
            backup_type=args.type,
            encryption_key=key,
            output_dir=args.path,
            encrypt_categories=args.encrypt,
            max_retained=args.keep,
        )
    except AutomatonError as e:
        print(to_json(e.to_dict()))
        return 2
    print(to_json(info))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
