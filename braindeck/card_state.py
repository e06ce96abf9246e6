"""Domain model for flashcards and their review state.

This module defines :class:`Card`, a dataclass that stores the content of a
flashcard together with its SM-2 scheduling fields, and the small amount of
policy that sits on top of the scheduler: deriving the display status and
stamping the review timestamps.  It also provides helpers for serialising a
card to and from the JSON records the rest of the application persists.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from braindeck import srs

STATUSES = ("new", "learning", "review", "mastered")
CARD_TYPES = ("qa", "cloze")


def _ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to a UTC timezone aware datetime."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Convert a JSON field into a :class:`datetime` in UTC if possible."""

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _ensure_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp: {value!r}") from exc
    raise TypeError(f"Unsupported timestamp value: {value!r}")


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime in ISO-8601 format (UTC) for JSON storage."""

    if value is None:
        return None
    return _ensure_utc(value).isoformat().replace("+00:00", "Z")


def _non_negative_int(value: Any) -> int:
    try:
        number = int(value or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected a whole number, got {value!r}") from exc
    return max(number, 0)


@dataclass(frozen=True)
class ReviewState:
    """The four scheduling fields persisted for every card."""

    repetitions: int = 0
    interval: int = 0
    ease_factor: float = srs.DEFAULT_EASE_FACTOR
    status: str = "new"

    @classmethod
    def initial(cls) -> "ReviewState":
        return cls()


@dataclass
class Card:
    """State container for a single flashcard.

    Parameters
    ----------
    card_id:
        Persistent identifier of the card.
    deck_id:
        Identifier of the deck the card belongs to.
    front / back:
        Prompt and answer text.
    card_type:
        ``"qa"`` or ``"cloze"``.
    repetitions / interval / ease_factor / status:
        Scheduling fields, see :class:`ReviewState`.
    last_reviewed / next_review:
        UTC timestamps of the last grading event and the next due date.
    user_id:
        Owner of the card when several learners share a data directory.
    """

    card_id: str
    deck_id: str
    front: str
    back: str
    card_type: str = "qa"
    repetitions: int = 0
    interval: int = 0
    ease_factor: float = srs.DEFAULT_EASE_FACTOR
    status: str = "new"
    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        status = str(self.status or "new").lower()
        if status not in STATUSES:
            raise ValueError(f"Unknown card status: {self.status!r}")
        self.status = status
        card_type = str(self.card_type or "qa").lower()
        if card_type not in CARD_TYPES:
            raise ValueError(f"Unknown card type: {self.card_type!r}")
        self.card_type = card_type
        self.last_reviewed = _parse_datetime(self.last_reviewed)
        self.next_review = _parse_datetime(self.next_review)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def new(
        cls,
        deck_id: str,
        front: str,
        back: str,
        *,
        card_type: str = "qa",
        card_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> "Card":
        """Create a card with the scheduling fields of a never-seen card."""

        initial = ReviewState.initial()
        return cls(
            card_id=card_id or uuid.uuid4().hex,
            deck_id=deck_id,
            front=front,
            back=back,
            card_type=card_type,
            repetitions=initial.repetitions,
            interval=initial.interval,
            ease_factor=initial.ease_factor,
            status=initial.status,
            user_id=user_id,
        )

    @classmethod
    def from_storage(cls, payload: Mapping[str, Any], *, deck_id: Optional[str] = None) -> "Card":
        """Create a :class:`Card` from a JSON record.

        Missing scheduling fields fall back to the values of a new card.  Legacy
        records with an ease factor under the floor are raised to it.
        """

        card_id = payload.get("card_id") or payload.get("id")
        if not card_id:
            raise ValueError("Card records must define a card_id")
        resolved_deck = payload.get("deck_id") or deck_id
        if not resolved_deck:
            raise ValueError(f"Card '{card_id}' has no deck_id")

        ease_raw = payload.get("ease_factor")
        try:
            ease_factor = float(ease_raw) if ease_raw not in (None, "") else srs.DEFAULT_EASE_FACTOR
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Card '{card_id}' has an invalid ease_factor: {ease_raw!r}") from exc
        if math.isnan(ease_factor):
            ease_factor = srs.DEFAULT_EASE_FACTOR

        user_id = payload.get("user_id")
        return cls(
            card_id=str(card_id),
            deck_id=str(resolved_deck),
            front=str(payload.get("front") or ""),
            back=str(payload.get("back") or ""),
            card_type=payload.get("type") or payload.get("card_type") or "qa",
            repetitions=_non_negative_int(payload.get("repetitions")),
            interval=_non_negative_int(payload.get("interval")),
            ease_factor=max(ease_factor, srs.MIN_EASE_FACTOR),
            status=payload.get("status") or "new",
            last_reviewed=payload.get("last_reviewed"),
            next_review=payload.get("next_review"),
            user_id=str(user_id) if user_id not in (None, "") else None,
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        """Serialise the card into a JSON friendly dictionary."""

        data: Dict[str, Any] = {
            "card_id": self.card_id,
            "deck_id": self.deck_id,
            "type": self.card_type,
            "front": self.front,
            "back": self.back,
            "repetitions": self.repetitions,
            "interval": self.interval,
            "ease_factor": self.ease_factor,
            "status": self.status,
            "last_reviewed": _format_datetime(self.last_reviewed),
            "next_review": _format_datetime(self.next_review),
        }
        if self.user_id is not None:
            data["user_id"] = self.user_id
        return data

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def review_state(self) -> ReviewState:
        return ReviewState(
            repetitions=self.repetitions,
            interval=self.interval,
            ease_factor=self.ease_factor,
            status=self.status,
        )

    def replace(self, **changes: Any) -> "Card":
        """Return a new instance with *changes* applied."""

        return replace(self, **changes)


def derive_status(grade: Any, result: srs.ScheduleResult) -> str:
    """Pick the display status for a card that was just graded."""

    if not srs.is_success(grade):
        return "learning"
    if result.interval > srs.MASTERED_INTERVAL_DAYS:
        return "mastered"
    return "review"


def apply_review(card: Card, grade: Any, now: Optional[datetime] = None) -> Card:
    """Grade *card* and return the updated copy.

    ``now`` defaults to the current UTC time and becomes both the
    ``last_reviewed`` stamp and the base of ``next_review``.
    """

    event_time = _ensure_utc(now) if now is not None else datetime.now(tz=timezone.utc)
    result = srs.compute_next_schedule(
        grade, card.repetitions, card.interval, card.ease_factor
    )
    return card.replace(
        repetitions=result.repetitions,
        interval=result.interval,
        ease_factor=result.ease_factor,
        status=derive_status(grade, result),
        last_reviewed=event_time,
        next_review=srs.project_review_date(result.interval, event_time),
    )


def is_due(card: Card, now: Optional[datetime] = None) -> bool:
    if card.next_review is None:
        return True
    current = _ensure_utc(now) if now is not None else datetime.now(tz=timezone.utc)
    return card.next_review <= current


__all__ = [
    "CARD_TYPES",
    "STATUSES",
    "Card",
    "ReviewState",
    "apply_review",
    "derive_status",
    "is_due",
]
