import json
from datetime import datetime, timezone

import pytest

from braindeck import filework
from braindeck.card_state import Card, apply_review

NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)


def make_deck(title="Biology", count=3):
    deck = filework.new_deck(title, subject="Science")
    for index in range(count):
        deck.cards.append(Card.new(deck.deck_id, f"q{index}", f"a{index}", card_id=f"card-{index}"))
    return deck


def test_write_and_read_deck(data_root):
    deck = make_deck()
    path = filework.write_deck(deck)

    assert path == data_root / "decks" / f"{deck.deck_id}.json"
    loaded = filework.read_deck(deck.deck_id)
    assert loaded.title == "Biology"
    assert loaded.subject == "Science"
    assert loaded.card_count == 3
    assert [card.front for card in loaded.cards] == ["q0", "q1", "q2"]


def test_write_deck_rejects_foreign_cards(data_root):
    deck = make_deck()
    deck.cards.append(Card.new("other", "x", "y"))
    with pytest.raises(ValueError):
        filework.write_deck(deck)


def test_read_missing_deck(data_root):
    with pytest.raises(FileNotFoundError):
        filework.read_deck("nope")


def test_read_deck_overlays_stored_state(data_root):
    deck = make_deck()
    filework.write_deck(deck)
    graded = apply_review(deck.cards[1], "good", NOW)
    filework.save_card_state(graded)

    loaded = filework.read_deck(deck.deck_id)

    assert loaded.cards[1].repetitions == 1
    assert loaded.cards[1].status == "review"
    assert loaded.cards[1].next_review == graded.next_review
    assert loaded.cards[0].status == "new"
    # Other learners do not see the stored state.
    assert filework.read_deck(deck.deck_id, user_id="someone").cards[1].status == "new"


def test_save_card_state_replaces_existing_record(data_root):
    card = make_deck().cards[0]
    filework.save_card_state(apply_review(card, 3, NOW))
    filework.save_card_state(apply_review(card, 1, NOW))

    lines = filework.STATE_FILE.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    stored = filework.load_card_states()["card-0"]
    assert stored.status == "learning"
    assert stored.user_id == filework.DEFAULT_USER_ID


def test_save_card_states_bulk(data_root):
    cards = make_deck().cards
    filework.save_card_states(cards, user_id="ana")

    assert sorted(filework.load_card_states("ana")) == ["card-0", "card-1", "card-2"]
    assert filework.load_card_states() == {}


def test_list_update_and_delete_decks(data_root):
    first = make_deck("First")
    second = make_deck("Second", count=1)
    filework.write_deck(first)
    filework.write_deck(second)

    assert {deck.title for deck in filework.list_decks()} == {"First", "Second"}

    updated = filework.update_deck_info(second.deck_id, title="Renamed", last_studied=NOW)
    assert updated.title == "Renamed"
    assert updated.last_studied == NOW

    assert filework.delete_deck(first.deck_id)
    assert not filework.delete_deck(first.deck_id)
    assert [deck.title for deck in filework.list_decks()] == ["Renamed"]


def test_update_card(data_root):
    deck = make_deck()
    filework.write_deck(deck)

    filework.update_card(deck.cards[0].replace(back="edited"))
    assert filework.read_deck(deck.deck_id).cards[0].back == "edited"

    with pytest.raises(KeyError):
        filework.update_card(Card.new(deck.deck_id, "x", "y", card_id="missing"))


def test_import_deck_from_csv(data_root, tmp_path):
    source = tmp_path / "Cell biology.csv"
    source.write_text(
        "Front,Back,Type\n"
        "What is ATP?,Energy currency,qa\n"
        "The {{c1::nucleus}} holds DNA,nucleus,cloze\n"
        ",,\n"
        "ignored,after blank,qa\n",
        encoding="utf-8",
    )

    deck = filework.import_deck_from_spreadsheet(source, subject="Biology")

    assert deck.title == "Cell biology"
    assert deck.card_count == 2
    assert [card.card_type for card in deck.cards] == ["qa", "cloze"]
    assert all(card.status == "new" for card in deck.cards)
    assert filework.read_deck(deck.deck_id).card_count == 2


def test_import_deck_validates_input(data_root, tmp_path):
    no_back = tmp_path / "bad.csv"
    no_back.write_text("Front\nq\n", encoding="utf-8")
    with pytest.raises(ValueError):
        filework.import_deck_from_spreadsheet(no_back)

    empty = tmp_path / "empty.csv"
    empty.write_text("Front,Back\n", encoding="utf-8")
    with pytest.raises(ValueError):
        filework.import_deck_from_spreadsheet(empty)

    notes = tmp_path / "notes.txt"
    notes.write_text("Front,Back\nq,a\n", encoding="utf-8")
    with pytest.raises(ValueError):
        filework.import_deck_from_spreadsheet(notes)

    with pytest.raises(FileNotFoundError):
        filework.import_deck_from_spreadsheet(tmp_path / "missing.csv")


def test_review_log_requires_fields(data_root):
    with pytest.raises(ValueError):
        filework.append_review_log({"card_id": "c"})
    with pytest.raises(TypeError):
        filework.append_review_log(["card_id"])

    record = filework.append_review_log(
        {
            "user_id": "default",
            "card_id": "c",
            "grade": 3,
            "interval": 1,
            "ease_factor": 2.5,
            "repetitions": 1,
            "success": True,
            "reviewed_at": NOW,
        }
    )
    assert record["reviewed_at"] == "2024-03-01T00:00:00Z"
    assert "logged_at" in record
    assert json.loads(filework.LOG_FILE.read_text(encoding="utf-8")) == record


def test_add_cards_to_deck(data_root):
    deck = make_deck(count=1)
    filework.write_deck(deck)

    updated = filework.add_cards(deck.deck_id, [Card.new(deck.deck_id, "new q", "new a", card_id="extra")])

    assert updated.card_count == 2
    assert filework.read_deck(deck.deck_id).cards[-1].front == "new q"

    with pytest.raises(ValueError):
        filework.add_cards(deck.deck_id, [Card.new(deck.deck_id, "dup", "dup", card_id="extra")])
    with pytest.raises(ValueError):
        filework.add_cards(deck.deck_id, [Card.new("other", "x", "y")])
    with pytest.raises(FileNotFoundError):
        filework.add_cards("missing", [])


def test_delete_card_drops_stored_state(data_root):
    deck = make_deck()
    filework.write_deck(deck)
    filework.save_card_state(apply_review(deck.cards[0], 3, NOW))
    filework.save_card_state(apply_review(deck.cards[1], 3, NOW))

    filework.delete_card(deck.deck_id, "card-0")

    assert [card.card_id for card in filework.read_deck(deck.deck_id).cards] == ["card-1", "card-2"]
    assert sorted(filework.load_card_states()) == ["card-1"]
    with pytest.raises(KeyError):
        filework.delete_card(deck.deck_id, "card-0")
