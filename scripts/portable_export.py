from __future__ import annotations

import argparse

from automaton.core.errors import AutomatonError
from automaton.core.migration.cli import add_common_args, add_key_args, build_services, read_key, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Export durable state as one portable bundle file")
    ap.add_argument("output_path")
    ap.add_argument("--sandbox-id", default=None, help="Source sandbox id (defaults to automaton.json sandboxId)")
    add_common_args(ap)
    add_key_args(ap)
    args = ap.parse_args()

    _, mig = build_services(args.root)
    key = read_key(args.key_env, args.ask_key, prompt="Encryption key: ", confirm=True)
    try:
        exp = mig.export_portable(args.sandbox_id, args.output_path, encryption_key=key)
    except AutomatonError as e:
        print(to_json(e.to_dict()))
        return 2
    print(to_json(exp))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
