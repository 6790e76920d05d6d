"""Corpus navigation: which historical continuations are available here."""

from typing import Sequence

import chess

from corpus import MoveCorpus, is_metadata_key, normalize_san
from models import Candidate


def legal_sans(board: chess.Board) -> list[str]:
    """Legal moves of the position in SAN, in the rules library's generation order."""
    return [board.san(move) for move in board.legal_moves]


def history_from_board(board: chess.Board) -> list[str]:
    """Replay the board's move stack from its root and return the SAN history."""
    replay = board.root()
    history = []
    for move in board.move_stack:
        history.append(replay.san(move))
        replay.push(move)
    return history


def navigate(
    history: Sequence[str], corpus: MoveCorpus, legal_moves: Sequence[str]
) -> list[Candidate] | None:
    """
    Follow history through the corpus and return the legal continuations
    at the reached node, most played first.

    Returns None when the history leaves the corpus or when no recorded
    continuation is legal in the current position. Candidate moves are
    the exact strings of legal_moves, so suffixes such as "+" survive.
    """
    node = corpus.node_at(history)
    if node is None:
        return None

    legal_by_key = {}
    for san in legal_moves:
        legal_by_key.setdefault(normalize_san(san), san)

    candidates = []
    for key, child in node.children.items():
        if is_metadata_key(key):
            continue
        legal = legal_by_key.get(normalize_san(key))
        if legal is None:
            continue
        games = child.games if child.games and child.games > 0 else 1
        candidates.append(Candidate(move=legal, games=games))

    if not candidates:
        return None
    candidates.sort(key=lambda c: -c.games)
    return candidates
