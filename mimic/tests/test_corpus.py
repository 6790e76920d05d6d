"""Tests for corpus.py"""

import sys
from pathlib import Path

import chess
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from corpus import (
    DEFAULT_OPENINGS,
    GAMES_KEY,
    MoveCorpus,
    default_corpus,
    normalize_san,
    parse_movetext,
)


@pytest.mark.parametrize("raw,expected", [
    ("e4", "e4"),
    ("Nf3+", "Nf3"),
    ("Qxf7#", "Qxf7"),
    ("e4!", "e4"),
    ("Bb5?!", "Bb5"),
    ("O-O+!!", "O-O"),
    (" d4 ", "d4"),
])
def test_normalize_san_strips_suffixes(raw, expected):
    assert normalize_san(raw) == expected


def test_parse_movetext_drops_numbers_and_result():
    assert parse_movetext("1. e4 e5 2. Nf3 Nc6 3.Bb5 1-0") == ["e4", "e5", "Nf3", "Nc6", "Bb5"]
    assert parse_movetext("1... c5") == ["c5"]


def test_add_game_counts_every_node_on_the_path():
    corpus = MoveCorpus()
    corpus.add_game(["e4", "e5", "Nf3"])
    corpus.add_game(["e4", "c5"])
    corpus.add_game(["d4"])

    assert len(corpus) == 3
    assert corpus.root.children["e4"].games == 2
    assert corpus.root.children["e4"].children["e5"].games == 1
    assert corpus.root.children["e4"].children["c5"].games == 1
    assert corpus.root.children["d4"].games == 1
    assert corpus.size() == 5


def test_add_game_respects_depth_cap():
    corpus = MoveCorpus()
    stored = corpus.add_game(["e4", "e5", "Nf3", "Nc6", "Bb5"], max_ply=3)
    assert stored == 3
    assert corpus.max_depth() == 3
    assert corpus.node_at(["e4", "e5", "Nf3", "Nc6"]) is None


def test_node_at_normalizes_history_and_signals_miss():
    corpus = MoveCorpus()
    corpus.add_game(["e4", "e5", "Nf3"])
    assert corpus.node_at(["e4!", "e5"]) is corpus.root.children["e4"].children["e5"]
    assert corpus.node_at(["d4"]) is None
    assert corpus.node_at([]) is corpus.root


def test_from_dict_accepts_legacy_and_sentinel_counters():
    corpus = MoveCorpus.from_dict({
        "e4": {"games": 10, "e5": {"__games": 8}, "c5": {}},
        "d4": {"__games": None},
        "_stats": {"totalGames": 11},
    })
    e4 = corpus.root.children["e4"]
    assert e4.games == 10
    assert e4.children["e5"].games == 8
    assert e4.children["c5"].games == 1
    assert corpus.root.children["d4"].games == 1
    assert "_stats" not in corpus.root.children
    assert len(corpus) == 11


def test_from_dict_rejects_non_mapping():
    with pytest.raises(ValueError):
        MoveCorpus.from_dict(["e4"])


def test_to_dict_uses_reserved_key():
    corpus = MoveCorpus()
    corpus.add_game(["e4", "e5"])
    data = corpus.to_dict()
    assert data == {GAMES_KEY: 1, "e4": {GAMES_KEY: 1, "e5": {GAMES_KEY: 1}}}
    assert MoveCorpus.from_dict(data).to_dict() == data


def test_very_deep_corpus_does_not_recurse():
    depth = 5000
    data = {}
    node = data
    for i in range(depth):
        child = {GAMES_KEY: 1}
        node["Nf3" if i % 2 == 0 else "Ng1"] = child
        node = child

    corpus = MoveCorpus.from_dict(data)
    assert corpus.max_depth() == depth
    assert corpus.size() == depth
    assert len(corpus.to_dict()) == 2


def test_dump_and_load(tmp_path):
    corpus = MoveCorpus()
    corpus.add_game(["c4", "e5", "Nc3"])
    path = tmp_path / "corpus.json"
    corpus.dump(path)
    loaded = MoveCorpus.load(path)
    assert loaded.to_dict() == corpus.to_dict()


def test_default_corpus_contains_main_openings():
    corpus = default_corpus()
    roots = corpus.root_moves()
    assert "e4" in roots
    assert "d4" in roots
    assert len(corpus) == sum(weight for _, _, weight in DEFAULT_OPENINGS)


@pytest.mark.parametrize("name,movetext,weight", DEFAULT_OPENINGS)
def test_default_openings_are_legal(name, movetext, weight):
    board = chess.Board()
    for san in parse_movetext(movetext):
        board.push_san(san)
    assert weight > 0


@pytest.mark.parametrize("counter", [float("inf"), float("nan"), -3, "lots"])
def test_unusable_counters_count_as_one(counter):
    corpus = MoveCorpus.from_dict({"__games": counter, "e4": {"__games": counter}})
    assert corpus.root.children["e4"].games == 1
    assert len(corpus) == 1
