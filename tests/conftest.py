import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from braindeck import filework


@pytest.fixture
def data_root(tmp_path, monkeypatch):
    """Point the file store at a temporary directory."""
    monkeypatch.setattr(filework, "DATA_ROOT", tmp_path)
    monkeypatch.setattr(filework, "DECK_ROOT", tmp_path / "decks")
    monkeypatch.setattr(filework, "STATE_FILE", tmp_path / "state" / "card_state.jsonl")
    monkeypatch.setattr(filework, "LOG_FILE", tmp_path / "log" / "review_log.jsonl")
    monkeypatch.setattr(filework, "SESSION_LOG_FILE", tmp_path / "log" / "study_sessions.jsonl")
    return tmp_path
