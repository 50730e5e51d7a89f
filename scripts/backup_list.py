from __future__ import annotations

import argparse

from automaton.core.migration.cli import add_common_args, backups_lines, build_services


def main() -> int:
    ap = argparse.ArgumentParser(description="Automaton backup list / prune")
    ap.add_argument("--path", default=None, help="Backups directory (defaults to <root>/backups)")
    ap.add_argument("--sandbox-id", default=None, help="Only list backups of this sandbox")
    ap.add_argument("--prune", type=int, default=None, metavar="KEEP", help="Delete the oldest backups beyond KEEP")
    add_common_args(ap)
    args = ap.parse_args()

    svc, _ = build_services(args.root)
    if args.prune is not None:
        removed = svc.prune_backups(args.path, args.prune)
        print(f"Pruned {removed} backup(s).")
    items = svc.list_backups(backups_root=args.path, sandbox_id=args.sandbox_id)
    if not items:
        print("No backups found.")
        return 0
    for line in backups_lines(items):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
