from __future__ import annotations

import argparse

from automaton.core.errors import IntegrityError
from automaton.core.migration.cli import add_common_args, build_services, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Check every file of a migration backup is present locally")
    ap.add_argument("backup_path")
    add_common_args(ap)
    args = ap.parse_args()

    _, mig = build_services(args.root)
    try:
        res = mig.verify_migration(args.backup_path)
    except IntegrityError as e:
        print(to_json(e.to_dict()))
        return 2
    print(to_json(res))
    return 0 if res.complete else 1


if __name__ == "__main__":
    raise SystemExit(main())
