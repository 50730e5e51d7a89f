from __future__ import annotations

import argparse

from automaton.core.errors import AutomatonError
from automaton.core.migration.cli import add_common_args, add_key_args, build_services, read_key, to_json


def main() -> int:
    ap = argparse.ArgumentParser(description="Re-encrypt a backup's secrets under a new key (writes a new backup)")
    ap.add_argument("backup_path")
    ap.add_argument("--path", default=None, help="Output directory (defaults to the source backup's directory)")
    add_common_args(ap)
    add_key_args(ap, flag="--old-key-env", prompt_flag="--ask-old-key", what="current key")
    add_key_args(ap, flag="--new-key-env", prompt_flag="--ask-new-key", what="new key")
    args = ap.parse_args()

    svc, _ = build_services(args.root)
    old = read_key(args.old_key_env, args.ask_old_key, prompt="Current key: ")
    new = read_key(args.new_key_env, args.ask_new_key, prompt="New key: ", confirm=True)
    if not old or not new:
        raise SystemExit("Both the current and the new key are required.")
    try:
        info = svc.rekey_backup(args.backup_path, old, new, output_dir=args.path)
    except AutomatonError as e:
        print(to_json(e.to_dict()))
        return 2
    print(to_json(info))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
