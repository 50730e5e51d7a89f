from __future__ import annotations

import argparse

from automaton.core.migration.cli import add_common_args, add_key_args, build_services, read_key, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Import a portable bundle into this sandbox")
    ap.add_argument("bundle_path")
    ap.add_argument("new_sandbox_id")
    add_common_args(ap)
    add_key_args(ap)
    args = ap.parse_args()

    _, mig = build_services(args.root)
    key = read_key(args.key_env, args.ask_key, prompt="Decryption key: ")
    res = mig.import_portable(args.bundle_path, args.new_sandbox_id, decryption_key=key)
    print(to_json(res))
    return 0 if res.success else 2


if __name__ == "__main__":
    raise SystemExit(main())
