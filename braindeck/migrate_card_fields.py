"""Utility to backfill SM-2 scheduling fields in legacy deck JSON files."""

from __future__ import annotations

import argparse
import json
import math
from collections.abc import Iterable, Iterator, MutableMapping
from pathlib import Path
from typing import Any, Dict, List, Optional

from braindeck import filework, srs
from braindeck.card_state import STATUSES
from braindeck.logging_config import get_logger

logger = get_logger(__name__)


def _constant(value: Any):
    return lambda: value


DEFAULT_FACTORIES = {
    "repetitions": _constant(0),
    "interval": _constant(0),
    "ease_factor": _constant(srs.DEFAULT_EASE_FACTOR),
    "status": _constant("new"),
    "last_reviewed": _constant(None),
    "next_review": _constant(None),
}
# Never-reviewed cards legitimately store null here.
NULLABLE_FIELDS = {"last_reviewed", "next_review"}


def _iter_deck_files(paths: Iterable[Path]) -> Iterator[Path]:
    for root in paths:
        if not root.exists():
            continue
        if root.is_file() and root.suffix.lower() == ".json":
            yield root
        elif root.is_dir():
            for candidate in sorted(root.rglob("*.json")):
                if candidate.is_file():
                    yield candidate


def _ensure_entry_defaults(entry: MutableMapping[str, Any]) -> bool:
    changed = False
    for field, factory in DEFAULT_FACTORIES.items():
        if field in entry and (entry[field] is not None or field in NULLABLE_FIELDS):
            continue
        entry[field] = factory()
        changed = True

    try:
        ease = float(entry["ease_factor"])
    except (TypeError, ValueError):
        ease = srs.DEFAULT_EASE_FACTOR
    if math.isnan(ease):
        ease = srs.DEFAULT_EASE_FACTOR
    elif ease < srs.MIN_EASE_FACTOR:
        ease = srs.MIN_EASE_FACTOR
    current = entry["ease_factor"]
    if isinstance(current, bool) or not isinstance(current, (int, float)) or ease != current:
        entry["ease_factor"] = ease
        changed = True

    for field in ("repetitions", "interval"):
        try:
            value = max(int(entry[field]), 0)
        except (TypeError, ValueError):
            value = 0
        if value != entry[field]:
            entry[field] = value
            changed = True

    if str(entry["status"]).lower() not in STATUSES:
        entry["status"] = "new"
        changed = True
    return changed


def migrate_file(path: Path, dry_run: bool = False) -> bool:
    with path.open("r", encoding="utf-8") as handle:
        payload: Dict[str, Any] = json.load(handle)

    cards = payload.get("cards")
    if not isinstance(cards, list):
        logger.warning("Skipping %s: no card list", path)
        return False

    changed = False
    for entry in cards:
        if isinstance(entry, MutableMapping) and _ensure_entry_defaults(entry):
            changed = True

    if changed and not dry_run:
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=4, ensure_ascii=False)

    return changed


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Seed SM-2 scheduling defaults in deck JSON files."
    )
    parser.add_argument(
        "paths",
        nargs="*",
        type=Path,
        default=[filework.DECK_ROOT],
        help=f"Files or directories to process (defaults to {filework.DECK_ROOT}).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changes without writing updated files.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    targets = list(_iter_deck_files(args.paths))

    updated = []
    for file_path in targets:
        if migrate_file(file_path, dry_run=args.dry_run):
            updated.append(file_path)

    action = "would update" if args.dry_run else "updated"
    if updated:
        print(f"{action.capitalize()} {len(updated)} file(s):")
        for file_path in updated:
            print(f" - {file_path}")
    else:
        print("No changes required.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
