"""Tests for evaluator.py"""

import random
import sys
from pathlib import Path
from unittest.mock import patch

import chess

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from evaluator import FALLBACK_RULES, allows_mate_in_one, evaluate, find_mate_in_one, priority_move

SCHOLARS_MATE = "r1bqkb1r/pppp1ppp/2n2n2/4p2Q/2B1P3/8/PPPP1PPP/RNB1K1NR w KQkq - 4 4"
FREE_QUEEN = "4k3/8/8/3q4/8/8/3R4/4K3 w - - 0 1"


def board_after(*moves: str) -> chess.Board:
    board = chess.Board()
    for san in moves:
        board.push_san(san)
    return board


def test_evaluate_leaves_board_untouched():
    board = board_after("e4", "e5", "Nf3")
    fen = board.fen()
    stack = list(board.move_stack)
    evaluate(board, rng=random.Random(1))
    assert board.fen() == fen
    assert board.move_stack == stack


def test_scores_are_sorted_best_first():
    scored = evaluate(board_after("d4", "d5"), rng=random.Random(2))
    scores = [s.score for s in scored]
    assert scores == sorted(scores, reverse=True)
    assert len(scored) == board_after("d4", "d5").legal_moves.count()


def test_mate_dominates():
    scored = evaluate(chess.Board(SCHOLARS_MATE), rng=random.Random(3))
    assert scored[0].move == "Qxf7#"


def test_free_material_is_taken():
    scored = evaluate(chess.Board(FREE_QUEEN), rng=random.Random(4))
    assert scored[0].move == "Rxd5"


def test_development_beats_edge_pawn_in_opening():
    scores = {s.move: s.score for s in evaluate(chess.Board(), ply=0, rng=random.Random(5))}
    assert scores["Nf3"] > scores["a3"]
    assert scores["Nc3"] > scores["h3"]


def test_moves_into_attack_are_penalized():
    # Ng5 walks into the h6 pawn with nothing defending g5
    board = board_after("e4", "h6", "Nf3", "a6")
    scores = {s.move: s.score for s in evaluate(board, rng=random.Random(6))}
    assert scores["Ng5"] < scores["Nc3"]


def test_restricts_to_given_moves_and_skips_bad_strings():
    scored = evaluate(chess.Board(), ["e4", "Nf3", "Zz9", "e5"], rng=random.Random(7))
    assert sorted(s.move for s in scored) == ["Nf3", "e4"]


def test_seeded_rng_is_reproducible():
    first = evaluate(chess.Board(), rng=random.Random(42))
    second = evaluate(chess.Board(), rng=random.Random(42))
    assert first == second


def test_find_mate_in_one():
    assert find_mate_in_one(chess.Board(SCHOLARS_MATE)) == "Qxf7#"
    assert find_mate_in_one(chess.Board()) is None


def test_allows_mate_in_one():
    board = board_after("f3", "e5")
    fen = board.fen()
    assert allows_mate_in_one(board, board.parse_san("g4"))
    assert not allows_mate_in_one(board, board.parse_san("e4"))
    assert board.fen() == fen


def test_priority_move_prefers_mate():
    assert priority_move(chess.Board(SCHOLARS_MATE), rng=random.Random(0)) == ("Qxf7#", "checkmate")


def test_priority_move_takes_winning_capture():
    assert priority_move(chess.Board(FREE_QUEEN), rng=random.Random(0)) == ("Rxd5", "good capture")


def test_priority_move_develops_in_opening():
    move, label = priority_move(chess.Board(), ply=0, rng=random.Random(0))
    assert label == "development"
    assert move in {"Na3", "Nc3", "Nf3", "Nh3"}


def test_priority_move_never_allows_mate():
    board = board_after("f3", "e5")
    with patch("evaluator.FALLBACK_RULES", []):
        picks = {priority_move(board, rng=random.Random(seed))[0] for seed in range(200)}
    assert "g4" not in picks


def test_priority_move_without_legal_moves():
    stalemate = chess.Board("7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")
    assert priority_move(stalemate) is None


def test_fallback_rules_are_ordered_predicates():
    labels = [label for _, label in FALLBACK_RULES]
    assert labels == ["good capture", "development", "central pawn", "castling"]
    assert all(callable(rule) for rule, _ in FALLBACK_RULES)
