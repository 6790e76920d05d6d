"""Tests for profile_builder.py"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from models import DEFAULT_RATING, MAX_RATING, Personality
from profile_builder import (
    build_profile,
    load_profile,
    load_records,
    parse_time_control,
    profile_from_dict,
    profile_to_dict,
    replay_moves,
    resolve_rating,
    save_profile,
)

SAMPLE_GAMES = [
    {"moves": ["e4", "e5", "Nf3"], "result": "win", "time_control": "180+2", "rating": 1400},
    {"moves": ["d4", "d5", "c4", "dxc4"], "result": "loss", "time_control": 900, "rating": 1600},
]


@pytest.mark.parametrize("value,expected", [
    (300, 300),
    ("600", 600),
    ("180+2", 180),
    ("1/259200", None),
    ("-", None),
    (None, None),
    (0, None),
    (True, None),
])
def test_parse_time_control(value, expected):
    assert parse_time_control(value) == expected


def test_empty_input_yields_default_profile():
    profile = build_profile([])
    assert profile.games_analyzed == 0
    assert profile.rating == DEFAULT_RATING
    assert profile.personality == Personality.neutral()
    assert "e4" in profile.corpus.root_moves()
    assert "d4" in profile.corpus.root_moves()


@pytest.mark.parametrize("records", [
    "not a list",
    None,
    [None, 42, "e4 e5"],
    [{"foo": 1}, {"moves": []}, {"moves": ["Zz9"]}, {"moves": "garbage"}],
])
def test_malformed_input_yields_default_profile(records):
    profile = build_profile(records)
    assert profile.games_analyzed == 0
    assert profile.corpus.root_moves()


def test_personality_from_records():
    profile = build_profile(SAMPLE_GAMES)
    assert profile.games_analyzed == 2
    assert profile.rating == 1500
    assert profile.corpus.root.children["e4"].games == 1
    assert profile.corpus.root.children["d4"].games == 1
    p = profile.personality
    assert p.tactics == pytest.approx(0.5)
    assert p.speed == pytest.approx(0.5)
    assert p.win_rate == pytest.approx(0.5)
    assert p.aggression == pytest.approx(0.5)


def test_movetext_records_are_accepted():
    profile = build_profile([{"moves": "1. e4 c5 2. Nf3 d6"}])
    assert profile.corpus.node_at(["e4", "c5", "Nf3", "d6"]) is not None


def test_annotations_are_stripped_and_counted():
    profile = build_profile([{"moves": ["e4!", "e5?!", "Nf3+"]}])
    assert profile.corpus.node_at(["e4", "e5", "Nf3"]) is not None
    assert profile.personality.aggression == pytest.approx(1.0)


def test_replay_stops_at_first_illegal_move():
    assert replay_moves(["e4", "e5", "Bb5", "Nf6", "Ke3", "Nc3"]) == ["e4", "e5", "Bb5", "Nf6"]
    assert replay_moves(["e4", None, "e5"]) == ["e4"]
    profile = build_profile([{"moves": ["e4", "e5", "Bb5", "Nf6", "Ke3"]}])
    assert profile.corpus.max_depth() == 4


def test_replay_stores_canonical_san():
    assert replay_moves(["e4", "d5", "Bb5"]) == ["e4", "d5", "Bb5"]


def test_max_ply_caps_corpus_depth():
    profile = build_profile(SAMPLE_GAMES, max_ply=2)
    assert profile.corpus.max_depth() == 2


def test_rating_resolution():
    assert resolve_rating(1800, SAMPLE_GAMES) == 1800
    assert resolve_rating(None, SAMPLE_GAMES) == 1500
    assert resolve_rating("abc", []) == DEFAULT_RATING
    assert resolve_rating(None, [{"rating": "n/a"}]) == DEFAULT_RATING
    assert build_profile(SAMPLE_GAMES, rating=5000).rating == MAX_RATING


def test_profile_dict_round_trip(tmp_path):
    profile = build_profile(SAMPLE_GAMES)
    data = profile_to_dict(profile)
    assert data["gamesAnalyzed"] == 2
    assert set(data["personality"]) == {"aggression", "tactics", "speed", "winRate"}

    path = tmp_path / "profile.json"
    save_profile(profile, path)
    loaded = load_profile(path)
    assert loaded.rating == profile.rating
    assert loaded.personality == profile.personality
    assert loaded.corpus.to_dict() == profile.corpus.to_dict()


def test_malformed_profile_dict_falls_back():
    profile = profile_from_dict({"corpus": "junk", "personality": [1, 2], "gamesAnalyzed": "x"})
    assert profile.rating == DEFAULT_RATING
    assert profile.games_analyzed == 0
    assert "e4" in profile.corpus.root_moves()
    assert profile_from_dict(None).games_analyzed == 0


def test_load_records_accepts_wrapped_document(tmp_path):
    path = tmp_path / "games.json"
    path.write_text(json.dumps({"games": SAMPLE_GAMES}))
    assert load_records(path) == SAMPLE_GAMES
    path.write_text(json.dumps(SAMPLE_GAMES))
    assert load_records(path) == SAMPLE_GAMES


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "9" * 5000])
def test_non_finite_time_control_is_ignored(value):
    assert parse_time_control(value) is None


@pytest.mark.parametrize("field", ["rating", "time_control"])
def test_infinite_numbers_in_records_do_not_raise(field):
    profile = build_profile([{"moves": ["e4", "e5"], field: float("inf")}])
    assert profile.games_analyzed == 1
    assert profile.rating == DEFAULT_RATING


def test_non_finite_values_in_saved_profile_fall_back():
    profile = profile_from_dict({
        "rating": float("inf"),
        "gamesAnalyzed": float("inf"),
        "gameLength": float("nan"),
        "corpus": {"e4": {"__games": float("inf")}},
    })
    assert profile.rating == DEFAULT_RATING
    assert profile.games_analyzed == 0
    assert profile.game_length == 40.0
    assert profile.corpus.root.children["e4"].games == 1


@pytest.mark.parametrize("null", ["--", "0000"])
def test_replay_stops_at_null_move(null):
    assert replay_moves(["e4", null, "d4"]) == ["e4"]
    profile = build_profile([{"moves": ["e4", null, "d4"]}])
    assert profile.corpus.max_depth() == 1


def test_game_length_and_preferred_openings():
    profile = build_profile(SAMPLE_GAMES + [{"moves": ["e4", "e5", "Nf3", "Nc6", "Bb5"]}])
    assert profile.game_length == pytest.approx((3 + 4 + 5) / 3)
    assert profile.preferred_openings == {"e4 e5": 2, "d4 d5": 1}

    loaded = profile_from_dict(profile_to_dict(profile))
    assert loaded.game_length == pytest.approx(profile.game_length)
    assert loaded.preferred_openings == profile.preferred_openings


def test_default_profile_has_neutral_game_shape():
    profile = build_profile([])
    assert profile.game_length == 40.0
    assert profile.preferred_openings == {}
