"""Utilities for storing decks, card review state and study logs on disk."""

from __future__ import annotations

import json
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Tuple

import pandas as pd

from braindeck.card_state import Card, _format_datetime, _parse_datetime
from braindeck.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Paths and constants
# ---------------------------------------------------------------------------
DATA_ROOT = Path(os.environ.get("BRAINDECK_DATA_ROOT", "res"))
DECK_ROOT = DATA_ROOT / "decks"
STATE_FILE = DATA_ROOT / "state" / "card_state.jsonl"
LOG_FILE = DATA_ROOT / "log" / "review_log.jsonl"
SESSION_LOG_FILE = DATA_ROOT / "log" / "study_sessions.jsonl"
DEFAULT_USER_ID = "default"
SPREADSHEET_SUFFIXES = {".xlsx", ".xls"}

# Serialises read-modify-write cycles on the state file.
_STATE_LOCK = threading.RLock()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _normalise_user_id(user_id: Optional[str]) -> str:
    return str(user_id) if user_id not in (None, "") else DEFAULT_USER_ID


def _load_json(path: Path) -> MutableMapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(path: Path, payload: Mapping[str, Any]) -> None:
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=4, ensure_ascii=False)


def _read_jsonl(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    records: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            records.append(json.loads(line))
    return records


def _write_jsonl(path: Path, records: Iterable[Mapping[str, Any]]) -> None:
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(record, ensure_ascii=False))
            handle.write("\n")


def _append_jsonl(path: Path, record: Mapping[str, Any]) -> None:
    _ensure_parent(path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, ensure_ascii=False))
        handle.write("\n")


def _state_record_key(record: Mapping[str, Any]) -> Tuple[str, str]:
    user_id = _normalise_user_id(record.get("user_id"))
    card_id = record.get("card_id")
    if not card_id:
        raise ValueError("State records must define a card_id")
    return user_id, str(card_id)


def _state_to_record(card: Card, *, user_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "user_id": _normalise_user_id(user_id or card.user_id),
        "card_id": card.card_id,
        "state": card.to_storage_dict(),
    }


def _record_to_state(record: Mapping[str, Any]) -> Card:
    payload = record.get("state")
    if not isinstance(payload, Mapping):
        raise ValueError(f"Invalid state record for card {record.get('card_id')!r}")
    card = Card.from_storage(payload)
    card.user_id = _normalise_user_id(record.get("user_id"))
    return card


def _deck_path(deck_id: str) -> Path:
    return DECK_ROOT / f"{deck_id}.json"


# ---------------------------------------------------------------------------
# Decks
# ---------------------------------------------------------------------------

@dataclass
class Deck:
    deck_id: str
    title: str
    subject: str = ""
    created: Optional[datetime] = None
    last_studied: Optional[datetime] = None
    cards: List[Card] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.created = _parse_datetime(self.created) or _utc_now()
        self.last_studied = _parse_datetime(self.last_studied)

    @property
    def card_count(self) -> int:
        return len(self.cards)

    def info_dict(self) -> Dict[str, Any]:
        return {
            "deck_id": self.deck_id,
            "title": self.title,
            "subject": self.subject,
            "created": _format_datetime(self.created),
            "last_studied": _format_datetime(self.last_studied),
        }


def new_deck(title: str, subject: str = "") -> Deck:
    return Deck(deck_id=uuid.uuid4().hex, title=title, subject=subject)


def write_deck(deck: Deck) -> Path:
    """Write *deck* and its cards to ``DECK_ROOT/<deck_id>.json``."""

    for card in deck.cards:
        if card.deck_id != deck.deck_id:
            raise ValueError(
                f"Card '{card.card_id}' belongs to deck '{card.deck_id}', not '{deck.deck_id}'"
            )
    payload = {
        "deck": deck.info_dict(),
        "cards": [card.to_storage_dict() for card in deck.cards],
    }
    path = _deck_path(deck.deck_id)
    _write_json(path, payload)
    logger.debug("Wrote deck %s with %d cards to %s", deck.deck_id, deck.card_count, path)
    return path


def _deck_from_payload(payload: Mapping[str, Any], path: Path) -> Deck:
    info = payload.get("deck")
    if not isinstance(info, Mapping) or not info.get("deck_id"):
        raise ValueError(f"Deck file {path} has no deck header")
    deck_id = str(info["deck_id"])
    cards = [
        Card.from_storage(entry, deck_id=deck_id)
        for entry in payload.get("cards", [])
        if isinstance(entry, Mapping)
    ]
    return Deck(
        deck_id=deck_id,
        title=str(info.get("title") or path.stem),
        subject=str(info.get("subject") or ""),
        created=info.get("created"),
        last_studied=info.get("last_studied"),
        cards=cards,
    )


def read_deck(deck_id: str, *, user_id: Optional[str] = None) -> Deck:
    """Load a deck and overlay the latest stored review state of its cards."""

    path = _deck_path(deck_id)
    if not path.exists():
        raise FileNotFoundError(f"Deck '{deck_id}' not found in {DECK_ROOT}")
    deck = _deck_from_payload(_load_json(path), path)

    stored = load_card_states(user_id)
    merged: List[Card] = []
    for card in deck.cards:
        state = stored.get(card.card_id)
        if state is None:
            merged.append(card)
            continue
        merged.append(
            card.replace(
                repetitions=state.repetitions,
                interval=state.interval,
                ease_factor=state.ease_factor,
                status=state.status,
                last_reviewed=state.last_reviewed,
                next_review=state.next_review,
                user_id=state.user_id,
            )
        )
    deck.cards = merged
    return deck


def list_decks(*, user_id: Optional[str] = None) -> List[Deck]:
    if not DECK_ROOT.exists():
        return []
    decks = [
        read_deck(path.stem, user_id=user_id)
        for path in sorted(DECK_ROOT.glob("*.json"))
        if path.is_file()
    ]
    decks.sort(key=lambda deck: deck.created, reverse=True)
    return decks


def delete_deck(deck_id: str) -> bool:
    path = _deck_path(deck_id)
    if not path.exists():
        return False
    path.unlink()
    logger.info("Deleted deck %s", deck_id)
    return True


def update_deck_info(
    deck_id: str,
    *,
    title: Optional[str] = None,
    subject: Optional[str] = None,
    last_studied: Optional[datetime] = None,
) -> Deck:
    path = _deck_path(deck_id)
    if not path.exists():
        raise FileNotFoundError(f"Deck '{deck_id}' not found in {DECK_ROOT}")
    payload = _load_json(path)
    info = payload.setdefault("deck", {"deck_id": deck_id, "title": path.stem})
    if title is not None:
        info["title"] = title
    if subject is not None:
        info["subject"] = subject
    if last_studied is not None:
        info["last_studied"] = _format_datetime(last_studied)
    _write_json(path, payload)
    return _deck_from_payload(payload, path)


def update_card(card: Card) -> None:
    """Rewrite the content of *card* inside its deck file."""

    path = _deck_path(card.deck_id)
    if not path.exists():
        raise FileNotFoundError(f"Deck '{card.deck_id}' not found in {DECK_ROOT}")
    payload = _load_json(path)
    entries = payload.get("cards", [])
    for index, entry in enumerate(entries):
        if isinstance(entry, Mapping) and entry.get("card_id") == card.card_id:
            entries[index] = card.to_storage_dict()
            break
    else:
        raise KeyError(f"Card '{card.card_id}' not found in {path}")
    _write_json(path, payload)


def add_cards(deck_id: str, cards: Iterable[Card]) -> Deck:
    """Append *cards* to an existing deck and return the updated deck."""

    path = _deck_path(deck_id)
    if not path.exists():
        raise FileNotFoundError(f"Deck '{deck_id}' not found in {DECK_ROOT}")
    payload = _load_json(path)
    entries = payload.setdefault("cards", [])
    known = {entry.get("card_id") for entry in entries if isinstance(entry, Mapping)}
    added = 0
    for card in cards:
        if card.deck_id != deck_id:
            raise ValueError(
                f"Card '{card.card_id}' belongs to deck '{card.deck_id}', not '{deck_id}'"
            )
        if card.card_id in known:
            raise ValueError(f"Card '{card.card_id}' already exists in deck '{deck_id}'")
        entries.append(card.to_storage_dict())
        known.add(card.card_id)
        added += 1
    _write_json(path, payload)
    logger.info("Added %d cards to deck %s", added, deck_id)
    return _deck_from_payload(payload, path)


def delete_card(deck_id: str, card_id: str, *, user_id: Optional[str] = None) -> None:
    """Remove a card from its deck file and drop its stored review state."""

    path = _deck_path(deck_id)
    if not path.exists():
        raise FileNotFoundError(f"Deck '{deck_id}' not found in {DECK_ROOT}")
    payload = _load_json(path)
    entries = payload.get("cards", [])
    remaining = [
        entry for entry in entries
        if not (isinstance(entry, Mapping) and entry.get("card_id") == card_id)
    ]
    if len(remaining) == len(entries):
        raise KeyError(f"Card '{card_id}' not found in {path}")
    payload["cards"] = remaining
    _write_json(path, payload)

    key = (_normalise_user_id(user_id), card_id)
    with _STATE_LOCK:
        records = _read_jsonl(STATE_FILE)
        kept = [record for record in records if _state_record_key(record) != key]
        if len(kept) != len(records):
            _write_jsonl(STATE_FILE, kept)
    logger.info("Deleted card %s from deck %s", card_id, deck_id)


# ---------------------------------------------------------------------------
# Spreadsheet import
# ---------------------------------------------------------------------------

def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in SPREADSHEET_SUFFIXES:
        return pd.read_excel(path)
    if suffix == ".csv":
        return pd.read_csv(path)
    raise ValueError(f"Unsupported deck file type: {path.suffix}")


def _cell_text(value: Any) -> str:
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def import_deck_from_spreadsheet(
    path: Any,
    *,
    title: Optional[str] = None,
    subject: str = "",
) -> Deck:
    """Create a deck from a spreadsheet with ``Front``/``Back`` columns.

    An optional ``Type`` column selects ``qa`` or ``cloze`` cards.  Reading stops
    at the first row without a front.
    """

    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Spreadsheet not found: {source}")

    frame = _read_frame(source)
    missing = [column for column in ("Front", "Back") if column not in frame.columns]
    if missing:
        raise ValueError(f"{source.name} is missing column(s): {', '.join(missing)}")

    deck = new_deck(title or source.stem, subject)
    for _, row in frame.iterrows():
        front = _cell_text(row.get("Front"))
        if not front:
            break
        deck.cards.append(
            Card.new(
                deck.deck_id,
                front,
                _cell_text(row.get("Back")),
                card_type=_cell_text(row.get("Type")) or "qa",
            )
        )
    if not deck.cards:
        raise ValueError(f"{source.name} does not contain any cards")

    write_deck(deck)
    logger.info("Imported %d cards from %s into deck %s", deck.card_count, source, deck.deck_id)
    return deck


# ---------------------------------------------------------------------------
# Card state store (JSONL)
# ---------------------------------------------------------------------------

def load_card_states(user_id: Optional[str] = None) -> Dict[str, Card]:
    key_user = _normalise_user_id(user_id)
    states: Dict[str, Card] = {}
    for record in _read_jsonl(STATE_FILE):
        record_user, card_id = _state_record_key(record)
        if record_user == key_user:
            states[card_id] = _record_to_state(record)
    return states


def save_card_state(card: Card, *, user_id: Optional[str] = None) -> Card:
    record = _state_to_record(card, user_id=user_id)
    key = _state_record_key(record)
    with _STATE_LOCK:
        records = _read_jsonl(STATE_FILE)
        for stored in records:
            if _state_record_key(stored) == key:
                stored.update(record)
                break
        else:
            records.append(record)
        _write_jsonl(STATE_FILE, records)
    return _record_to_state(record)


def save_card_states(cards: Iterable[Card], *, user_id: Optional[str] = None) -> None:
    with _STATE_LOCK:
        records = _read_jsonl(STATE_FILE)
        record_map = {_state_record_key(record): record for record in records}
        for card in cards:
            record = _state_to_record(card, user_id=user_id)
            record_map[_state_record_key(record)] = record
        _write_jsonl(STATE_FILE, record_map.values())


# ---------------------------------------------------------------------------
# Review and study session logs
# ---------------------------------------------------------------------------

REVIEW_LOG_FIELDS = {
    "user_id",
    "card_id",
    "grade",
    "interval",
    "ease_factor",
    "repetitions",
    "success",
}

SESSION_LOG_FIELDS = {
    "deck_id",
    "cards_studied",
    "duration_seconds",
    "completed",
    "started_at",
    "ended_at",
}


def _prepare_log_record(entry: Mapping[str, Any], required: Iterable[str]) -> Dict[str, Any]:
    if not isinstance(entry, Mapping):
        raise TypeError("log entries must be mappings")
    record = dict(entry)
    missing = sorted(name for name in required if name not in record)
    if missing:
        raise ValueError(f"log entry is missing required fields: {', '.join(missing)}")
    record.setdefault("logged_at", _format_datetime(_utc_now()))
    for key, value in list(record.items()):
        if isinstance(value, Card):
            record[key] = value.to_storage_dict()
        elif isinstance(value, datetime):
            record[key] = _format_datetime(value)
    return record


def append_review_log(log_entry: Mapping[str, Any]) -> Dict[str, Any]:
    record = _prepare_log_record(log_entry, REVIEW_LOG_FIELDS)
    _append_jsonl(LOG_FILE, record)
    return record


def append_session_log(log_entry: Mapping[str, Any]) -> Dict[str, Any]:
    record = _prepare_log_record(log_entry, SESSION_LOG_FIELDS)
    _append_jsonl(SESSION_LOG_FILE, record)
    return record


def read_review_log() -> List[Dict[str, Any]]:
    return _read_jsonl(LOG_FILE)


def read_session_log() -> List[Dict[str, Any]]:
    return _read_jsonl(SESSION_LOG_FILE)


__all__ = [
    "Deck",
    "add_cards",
    "append_review_log",
    "append_session_log",
    "delete_card",
    "delete_deck",
    "import_deck_from_spreadsheet",
    "list_decks",
    "load_card_states",
    "new_deck",
    "read_deck",
    "read_review_log",
    "read_session_log",
    "save_card_state",
    "save_card_states",
    "update_card",
    "update_deck_info",
    "write_deck",
]
