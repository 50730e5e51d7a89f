from __future__ import annotations

import argparse

from automaton.core.migration.cli import add_common_args, build_services, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Automaton backup verify (no key needed)")
    ap.add_argument("backup_path")
    add_common_args(ap)
    args = ap.parse_args()
    svc, _ = build_services(args.root)
    res = svc.verify_backup_integrity(args.backup_path)
    print(to_json(res))
    return 0 if res.valid else 2


if __name__ == "__main__":
    raise SystemExit(main())
