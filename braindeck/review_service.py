"""High level helpers that orchestrate SM-2 reviews and persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from braindeck import filework, srs
from braindeck.card_state import STATUSES, Card, _ensure_utc, apply_review, is_due
from braindeck.logging_config import get_logger

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def submit_grade(
    card: Card,
    grade: Any,
    *,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
    persist: bool = True,
) -> Tuple[Card, Dict[str, object]]:
    """Record a review *grade* for *card* and persist the updated state."""

    event_dt = _ensure_utc(now) if now else _utc_now()
    value = srs.normalise_grade(grade)

    updated = apply_review(card, value, event_dt)
    resolved_user = user_id or updated.user_id or filework.DEFAULT_USER_ID
    updated.user_id = resolved_user

    diagnostics: Dict[str, object] = {
        "grade": value,
        "quality": srs.QUALITY_MAP[value],
        "success": srs.is_success(value),
        "interval": updated.interval,
        "ease_factor": updated.ease_factor,
        "repetitions": updated.repetitions,
        "next_review": updated.next_review,
        "previous_status": card.status,
        "before_state": card,
        "after_state": updated,
    }

    if persist:
        filework.save_card_state(updated, user_id=resolved_user)
        filework.append_review_log(
            {
                "user_id": resolved_user,
                "card_id": updated.card_id,
                "deck_id": updated.deck_id,
                "grade": value,
                "interval": updated.interval,
                "ease_factor": updated.ease_factor,
                "repetitions": updated.repetitions,
                "success": diagnostics["success"],
                "reviewed_at": event_dt,
                "before_state": card,
                "after_state": updated,
            }
        )

    logger.debug(
        "Card %s graded %d: interval %d -> %d, ease %.2f -> %.2f",
        card.card_id,
        value,
        card.interval,
        updated.interval,
        card.ease_factor,
        updated.ease_factor,
    )
    return updated, diagnostics


def due_cards(cards: Sequence[Card], now: Optional[datetime] = None) -> List[Card]:
    """Cards that are due at *now*, never-scheduled cards first."""

    current = _ensure_utc(now) if now else _utc_now()
    ready = [card for card in cards if is_due(card, current)]
    ready.sort(key=lambda card: (card.next_review is not None, card.next_review or current))
    return ready


@dataclass
class QueueSnapshot:
    new: int
    learning: int
    review: int
    mastered: int
    due: int
    total: int


@dataclass
class SessionSummary:
    deck_id: str
    cards_studied: int
    duration_seconds: int
    completed: bool
    confidence: Optional[int]
    started_at: datetime
    ended_at: datetime

    def to_log_entry(self) -> Dict[str, object]:
        return {
            "deck_id": self.deck_id,
            "cards_studied": self.cards_studied,
            "duration_seconds": self.duration_seconds,
            "completed": self.completed,
            "confidence": self.confidence,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }


class StudySession:
    """Walk through the cards of a deck, one grade at a time.

    An Again keeps the cursor on the same card so it is shown again straight
    away; any passing grade moves on.  The session is finished once the last
    card has been passed.
    """

    def __init__(
        self,
        deck_id: str,
        cards: Sequence[Card],
        *,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
        persist: bool = True,
    ) -> None:
        self.deck_id = deck_id
        self.cards: List[Card] = list(cards)
        self.user_id = user_id
        self.persist = persist
        self.started_at = _ensure_utc(now) if now else _utc_now()
        self.index = 0
        self.cards_studied = 0
        self.finished = not self.cards
        self.summary: Optional[SessionSummary] = None

    @classmethod
    def from_deck(
        cls,
        deck_id: str,
        *,
        user_id: Optional[str] = None,
        due_only: bool = False,
        now: Optional[datetime] = None,
    ) -> "StudySession":
        deck = filework.read_deck(deck_id, user_id=user_id)
        cards = due_cards(deck.cards, now) if due_only else deck.cards
        return cls(deck_id, cards, user_id=user_id, now=now)

    @property
    def current_card(self) -> Optional[Card]:
        if self.finished:
            return None
        return self.cards[self.index]

    @property
    def progress(self) -> float:
        if not self.cards:
            return 1.0
        return self.index / len(self.cards)

    def grade(self, grade: Any, now: Optional[datetime] = None) -> Card:
        if self.finished:
            raise RuntimeError("Cannot grade a card in a finished study session")
        card = self.cards[self.index]
        updated, diagnostics = submit_grade(
            card, grade, user_id=self.user_id, now=now, persist=self.persist
        )
        self.cards[self.index] = updated
        self.cards_studied += 1

        if diagnostics["success"]:
            if self.index + 1 < len(self.cards):
                self.index += 1
            else:
                self.finished = True
        return updated

    def preview(self) -> Dict[int, str]:
        card = self.current_card
        if card is None:
            return {}
        return srs.preview_intervals(card.repetitions, card.interval, card.ease_factor)

    def counts(self, now: Optional[datetime] = None) -> QueueSnapshot:
        by_status = {status: 0 for status in STATUSES}
        for card in self.cards:
            by_status[card.status] += 1
        return QueueSnapshot(
            new=by_status["new"],
            learning=by_status["learning"],
            review=by_status["review"],
            mastered=by_status["mastered"],
            due=len(due_cards(self.cards, now)),
            total=len(self.cards),
        )

    def finish(
        self,
        confidence: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SessionSummary:
        """Close the session and write it to the study session log."""

        if confidence is not None and not 1 <= confidence <= 5:
            raise ValueError(f"confidence must be between 1 and 5, got {confidence}")
        if self.summary is not None:
            return self.summary

        ended_at = _ensure_utc(now) if now else _utc_now()
        summary = SessionSummary(
            deck_id=self.deck_id,
            cards_studied=self.cards_studied,
            duration_seconds=max(int((ended_at - self.started_at).total_seconds()), 0),
            completed=self.finished,
            confidence=confidence,
            started_at=self.started_at,
            ended_at=ended_at,
        )
        if self.persist:
            filework.append_session_log(summary.to_log_entry())
            if self.cards_studied:
                filework.update_deck_info(self.deck_id, last_studied=ended_at)
        logger.info(
            "Study session on deck %s ended: %d cards in %ds",
            self.deck_id,
            summary.cards_studied,
            summary.duration_seconds,
        )
        self.summary = summary
        return summary


__all__ = [
    "QueueSnapshot",
    "SessionSummary",
    "StudySession",
    "due_cards",
    "submit_grade",
]
