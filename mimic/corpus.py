"""
Move corpus: a weighted trie of SAN move sequences from game start.

Each node records how many historical games passed through that exact
move sequence. Serialised form is a nested mapping keyed by normalised
SAN with a reserved "__games" counter:

  {"__games": 3, "e4": {"__games": 2, "e5": {"__games": 2}}, "d4": {"__games": 1}}

All traversals are iterative so arbitrarily deep trees are safe.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

GAMES_KEY = "__games"
LEGACY_GAMES_KEY = "games"
MAX_CORPUS_PLY = int(os.environ.get("MIMIC_MAX_CORPUS_PLY", "40"))

_ANNOTATION_RE = re.compile(r"[+#!?]+$")


def normalize_san(move: str) -> str:
    """Strip check, mate and annotation suffixes ("Nf3+!" -> "Nf3")."""
    return _ANNOTATION_RE.sub("", move.strip())


def parse_movetext(text: str) -> list[str]:
    """
    Split a movetext line ("1. e4 e5 2. Nf3") into SAN moves.
    Move numbers and results are dropped.
    """
    moves = []
    for token in text.split():
        if re.match(r"^\d+\.+$", token):
            continue
        token = re.sub(r"^\d+\.+", "", token)
        if token and token not in ("1-0", "0-1", "1/2-1/2", "*"):
            moves.append(normalize_san(token))
    return moves


def is_metadata_key(key) -> bool:
    # SAN never starts with "_"
    return not isinstance(key, str) or key.startswith("_") or key == LEGACY_GAMES_KEY


def _coerce_games(value) -> int:
    if isinstance(value, bool):
        return 1
    try:
        games = int(value)
    except (TypeError, ValueError, OverflowError):
        return 1
    return games if games >= 1 else 1


@dataclass
class CorpusNode:
    games: int = 1
    children: dict[str, "CorpusNode"] = field(default_factory=dict)

    def child(self, move: str) -> "CorpusNode | None":
        return self.children.get(normalize_san(move))


class MoveCorpus:
    """Weighted move tree. The root's counter is the number of games inserted."""

    def __init__(self, root: CorpusNode | None = None):
        self.root = root if root is not None else CorpusNode(games=0)

    def __len__(self) -> int:
        return self.root.games

    def __bool__(self) -> bool:
        return bool(self.root.children)

    def add_game(self, moves: Iterable[str], max_ply: int | None = MAX_CORPUS_PLY) -> int:
        """Insert one game's move sequence. Returns the number of plies stored."""
        self.root.games += 1
        node = self.root
        stored = 0
        for move in moves:
            if max_ply is not None and stored >= max_ply:
                break
            key = normalize_san(move)
            if not key or key.startswith("_"):
                break
            child = node.children.get(key)
            if child is None:
                child = CorpusNode(games=0)
                node.children[key] = child
            child.games += 1
            node = child
            stored += 1
        return stored

    def node_at(self, history: Iterable[str]) -> CorpusNode | None:
        """Walk from the root along history. None as soon as a move is missing."""
        node = self.root
        for move in history:
            node = node.child(move)
            if node is None:
                return None
        return node

    def root_moves(self) -> list[str]:
        return list(self.root.children)

    def size(self) -> int:
        """Number of move nodes (root excluded)."""
        count = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            count += len(node.children)
            stack.extend(node.children.values())
        return count

    def max_depth(self) -> int:
        deepest = 0
        stack = [(self.root, 0)]
        while stack:
            node, depth = stack.pop()
            deepest = max(deepest, depth)
            stack.extend((child, depth + 1) for child in node.children.values())
        return deepest

    def to_dict(self) -> dict:
        out: dict = {GAMES_KEY: self.root.games}
        stack = [(self.root, out)]
        while stack:
            node, target = stack.pop()
            for move, child in node.children.items():
                child_out = {GAMES_KEY: child.games}
                target[move] = child_out
                stack.append((child, child_out))
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "MoveCorpus":
        """
        Rebuild from the nested-mapping form. Metadata keys ("__games",
        "_stats", legacy "games") are skipped; a missing or null counter
        counts as one game.
        """
        if not isinstance(data, dict):
            raise ValueError("corpus must be a mapping")
        root_games = data.get(GAMES_KEY, data.get(LEGACY_GAMES_KEY))
        root = CorpusNode(games=0)
        stack = [(data, root)]
        while stack:
            mapping, node = stack.pop()
            for key, value in mapping.items():
                if is_metadata_key(key):
                    continue
                if not isinstance(value, dict):
                    value = {}
                games = value.get(GAMES_KEY, value.get(LEGACY_GAMES_KEY))
                child = CorpusNode(games=_coerce_games(games))
                node.children[normalize_san(key)] = child
                stack.append((value, child))
        if root_games is None:
            root.games = sum(c.games for c in root.children.values())
        else:
            root.games = _coerce_games(root_games)
        return cls(root)

    def dump(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str | Path) -> "MoveCorpus":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


# Well-known openings, weighted roughly by club popularity.
DEFAULT_OPENINGS: list[tuple[str, str, int]] = [
    ("Ruy Lopez", "1. e4 e5 2. Nf3 Nc6 3. Bb5 a6", 25),
    ("Italian Game", "1. e4 e5 2. Nf3 Nc6 3. Bc4 Bc5", 20),
    ("Scotch Game", "1. e4 e5 2. Nf3 Nc6 3. d4 exd4", 8),
    ("King's Gambit", "1. e4 e5 2. f4 exf4", 6),
    ("Sicilian Defense", "1. e4 c5 2. Nf3 d6 3. d4 cxd4", 30),
    ("Sicilian Defense: Closed", "1. e4 c5 2. Nc3 Nc6", 8),
    ("French Defense", "1. e4 e6 2. d4 d5", 15),
    ("Caro-Kann Defense", "1. e4 c6 2. d4 d5", 12),
    ("Queen's Gambit Declined", "1. d4 d5 2. c4 e6 3. Nc3 Nf6", 25),
    ("Slav Defense", "1. d4 d5 2. c4 c6 3. Nf3 Nf6", 12),
    ("Queen's Gambit Accepted", "1. d4 d5 2. c4 dxc4 3. Nf3", 6),
    ("Nimzo-Indian Defense", "1. d4 Nf6 2. c4 e6 3. Nc3 Bb4", 18),
    ("King's Indian Defense", "1. d4 Nf6 2. c4 g6 3. Nc3 Bg7", 15),
    ("Dutch Defense", "1. d4 f5 2. g3 Nf6", 4),
    ("Reti Opening", "1. Nf3 d5 2. d4 Nf6", 10),
    ("Reti Opening: King's Indian Attack", "1. Nf3 Nf6 2. c4 g6", 8),
    ("English Opening", "1. c4 e5 2. Nc3 Nf6", 8),
    ("English Opening: Anglo-Indian", "1. c4 Nf6 2. Nc3 g6", 5),
]


def default_corpus() -> MoveCorpus:
    """Curated repertoire used whenever no usable game history exists."""
    corpus = MoveCorpus()
    for _name, movetext, weight in DEFAULT_OPENINGS:
        moves = parse_movetext(movetext)
        for _ in range(weight):
            corpus.add_game(moves, max_ply=None)
    return corpus
