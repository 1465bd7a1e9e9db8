#!/usr/bin/env python3
"""Dump every key held in a pyflock storage directory.

Usage
-----
::

    export PYFLOCK_STORAGE_DIR="$HOME/.pyflock"
    python scripts/dump_state.py

Options::

    --dir PATH      Storage directory (default: $PYFLOCK_STORAGE_DIR)
    --key KEY       Only dump this key (repeatable)
    --accrue        Run an accrual pass before dumping
    --json          Output one JSON object instead of a listing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyflock import FlockConfig, StateContext  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _decode(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--dir", type=Path, default=None, help="Storage directory")
    parser.add_argument("--key", action="append", default=[], help="Only dump this key")
    parser.add_argument("--accrue", action="store_true", help="Run an accrual pass first")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {"accrual_enabled": False, "mqtt_enabled": False}
    if args.dir is not None:
        overrides["storage_dir"] = args.dir
    config = FlockConfig.from_env(**overrides)
    if config.storage_dir is None:
        print("No storage directory: pass --dir or set PYFLOCK_STORAGE_DIR", file=sys.stderr)
        return 2

    ctx = StateContext(config)
    try:
        if args.accrue:
            result = ctx.run_accrual()
            print(f"Accrual pass: {len(result.changes)} item(s) changed, {result.total_consumption} consumed")
        keys = args.key or ctx.store.keys()
        dump = {key: _decode(ctx.store.get(key)) for key in keys}
    finally:
        ctx.close()

    if args.json:
        json.dump(dump, sys.stdout, indent=2, default=str)
        print()
        return 0

    for key, value in dump.items():
        print(_section(key))
        print(json.dumps(value, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
