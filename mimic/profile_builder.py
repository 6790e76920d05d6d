#!/usr/bin/env python3
"""
Opponent Profile Builder

Turns a player's pre-parsed game records into the move corpus, rating
and personality the decision engine plays from. Each record is a
mapping with a "moves" list of SAN strings and optionally "result"
("win", "loss" or "draw" from the player's side), "time_control"
(seconds or "base+increment") and "rating".

Never fails: empty or unusable input yields the default opening corpus
and a neutral personality.

Usage:
  python profile_builder.py --games games.json --output profile.json
  python profile_builder.py --games games.json --output profile.json --rating 1650
"""

import argparse
import json
import logging
import math
import re
import sys
from collections.abc import Mapping
from pathlib import Path

import chess

sys.path.insert(0, str(Path(__file__).resolve().parent))
from corpus import MAX_CORPUS_PLY, MoveCorpus, default_corpus, normalize_san, parse_movetext
from models import DEFAULT_GAME_LENGTH, DEFAULT_RATING, Personality, Profile, clamp, clamp_rating

logger = logging.getLogger(__name__)

FAST_GAME_SECONDS = 600
RESULTS = ("win", "loss", "draw")


def parse_time_control(value) -> int | None:
    """Base time in seconds from 300, "600" or "180+2". None for daily or unknown."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return int(value) if value > 0 else None
    match = re.match(r"^\s*(\d{1,9})(?:\+\d+)?\s*$", str(value))
    if not match:
        return None
    seconds = int(match.group(1))
    return seconds if seconds > 0 else None


def replay_moves(moves) -> list[str]:
    """
    Replay moves from the starting position and return them as canonical
    SAN. Stops at the first move that is not a legal SAN string.
    """
    board = chess.Board()
    played = []
    for raw in moves:
        if not isinstance(raw, str):
            break
        san = normalize_san(raw)
        try:
            move = board.parse_san(san)
        except (chess.InvalidMoveError, chess.IllegalMoveError, chess.AmbiguousMoveError) as e:
            logger.debug("Stopping replay at %r after %d plies: %s", raw, len(played), e)
            break
        if not move:
            logger.debug("Stopping replay at null move %r after %d plies", raw, len(played))
            break
        played.append(normalize_san(board.san(move)))
        board.push(move)
    return played


def resolve_rating(rating, records: list) -> int:
    """Explicit rating, else the mean of the records' ratings, else the default."""
    if rating is not None:
        try:
            return int(rating)
        except (TypeError, ValueError, OverflowError):
            logger.warning("Ignoring non-numeric rating %r", rating)
    seen = []
    for record in records:
        if not isinstance(record, Mapping) or record.get("rating") is None:
            continue
        try:
            seen.append(clamp_rating(int(record["rating"])))
        except (TypeError, ValueError, OverflowError):
            logger.warning("Ignoring non-numeric record rating %r", record["rating"])
    if seen:
        return round(sum(seen) / len(seen))
    return DEFAULT_RATING


def build_profile(records, *, rating=None, max_ply: int | None = MAX_CORPUS_PLY) -> Profile:
    """Build the opponent profile from game records."""
    if not isinstance(records, (list, tuple)):
        logger.warning("Expected a list of game records, got %s", type(records).__name__)
        records = []

    corpus = MoveCorpus()
    games = skipped = 0
    captures = annotated = timed = fast = decided = wins = plies = 0
    openings: dict[str, int] = {}

    for record in records:
        if not isinstance(record, Mapping):
            skipped += 1
            continue
        moves = record.get("moves")
        if isinstance(moves, str):
            moves = parse_movetext(moves)
        if not isinstance(moves, (list, tuple)) or not moves:
            skipped += 1
            continue
        played = replay_moves(moves)
        if not played:
            skipped += 1
            continue

        corpus.add_game(played, max_ply=max_ply)
        games += 1
        plies += len(played)
        if len(played) >= 2:
            opening = " ".join(played[:2])
            openings[opening] = openings.get(opening, 0) + 1
        if any("x" in san for san in played):
            captures += 1
        if any(isinstance(m, str) and "!" in m for m in moves):
            annotated += 1
        base = parse_time_control(record.get("time_control"))
        if base is not None:
            timed += 1
            if base < FAST_GAME_SECONDS:
                fast += 1
        result = record.get("result")
        if result in RESULTS:
            decided += 1
            if result == "win":
                wins += 1

    resolved = resolve_rating(rating, list(records))
    if skipped:
        logger.warning("Skipped %d unusable game records", skipped)

    if games == 0:
        logger.warning("No usable games; using the default opening corpus")
        return Profile(
            corpus=default_corpus(),
            rating=resolved,
            personality=Personality.neutral(),
            games_analyzed=0,
        )

    personality = Personality(
        aggression=clamp(annotated / games + fast / games),
        tactics=captures / games,
        speed=fast / timed if timed else 0.5,
        win_rate=wins / decided if decided else 0.5,
    )
    logger.info("Built profile from %d games (rating %d, %d corpus nodes)", games, resolved, corpus.size())
    return Profile(
        corpus=corpus,
        rating=resolved,
        personality=personality,
        games_analyzed=games,
        game_length=plies / games,
        preferred_openings=openings,
    )


def profile_to_dict(profile: Profile) -> dict:
    p = profile.personality
    return {
        "rating": profile.rating,
        "personality": {
            "aggression": p.aggression,
            "tactics": p.tactics,
            "speed": p.speed,
            "winRate": p.win_rate,
        },
        "gamesAnalyzed": profile.games_analyzed,
        "gameLength": profile.game_length,
        "preferredOpenings": dict(profile.preferred_openings),
        "corpus": profile.corpus.to_dict(),
    }


def profile_from_dict(data) -> Profile:
    """Inverse of profile_to_dict. Missing or malformed parts fall back to defaults."""
    if not isinstance(data, Mapping):
        logger.warning("Malformed profile; using defaults")
        return build_profile([])

    try:
        corpus = MoveCorpus.from_dict(data.get("corpus"))
    except ValueError as e:
        logger.warning("Malformed profile corpus (%s); using the default corpus", e)
        corpus = default_corpus()
    if not corpus:
        corpus = default_corpus()

    raw = data.get("personality")
    personality = Personality.neutral()
    if isinstance(raw, Mapping):
        try:
            personality = Personality(
                aggression=raw.get("aggression", 0.5),
                tactics=raw.get("tactics", 0.5),
                speed=raw.get("speed", 0.5),
                win_rate=raw.get("winRate", 0.5),
            )
        except (TypeError, ValueError, OverflowError):
            logger.warning("Malformed personality %r; using neutral", raw)

    try:
        games_analyzed = int(data.get("gamesAnalyzed", 0))
    except (TypeError, ValueError, OverflowError):
        games_analyzed = 0
    try:
        game_length = float(data.get("gameLength", DEFAULT_GAME_LENGTH))
    except (TypeError, ValueError):
        game_length = DEFAULT_GAME_LENGTH
    if not math.isfinite(game_length) or game_length < 0:
        game_length = DEFAULT_GAME_LENGTH
    raw = data.get("preferredOpenings")
    openings = {}
    if isinstance(raw, Mapping):
        for opening, count in raw.items():
            if isinstance(opening, str) and isinstance(count, int) and not isinstance(count, bool) and count > 0:
                openings[opening] = count
    return Profile(
        corpus=corpus,
        rating=resolve_rating(data.get("rating"), []),
        personality=personality,
        games_analyzed=games_analyzed,
        game_length=game_length,
        preferred_openings=openings,
    )


def save_profile(profile: Profile, path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(profile_to_dict(profile), f, indent=2)


def load_profile(path: str | Path) -> Profile:
    with open(path, encoding="utf-8") as f:
        return profile_from_dict(json.load(f))


def load_records(path: Path) -> list:
    """Game records from a JSON list or a {"games": [...]} document."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, Mapping):
        data = data.get("games", [])
    return data


def main():
    parser = argparse.ArgumentParser(description="Build an opponent profile from game records")
    parser.add_argument("--games", required=True, help="JSON file with game records")
    parser.add_argument("--output", "-o", required=True)
    parser.add_argument("--rating", type=int, default=None)
    parser.add_argument("--max-ply", type=int, default=MAX_CORPUS_PLY)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    source = Path(args.games)
    records = []
    if not source.exists():
        print(f"Warning: {source} not found; building the default profile.", file=sys.stderr)
    else:
        try:
            records = load_records(source)
        except json.JSONDecodeError as e:
            print(f"Warning: {source} is not valid JSON ({e}); building the default profile.", file=sys.stderr)

    profile = build_profile(records, rating=args.rating, max_ply=args.max_ply)
    save_profile(profile, args.output)
    p = profile.personality
    print(f"Analyzed {profile.games_analyzed} games, rating {profile.rating}.")
    print(f"  aggression {p.aggression:.2f}  tactics {p.tactics:.2f}  speed {p.speed:.2f}  win rate {p.win_rate:.2f}")
    print(f"  corpus: {profile.corpus.size()} nodes, root moves {', '.join(profile.corpus.root_moves())}")
    print(f"Wrote {args.output}")


if __name__ == "__main__":
    main()
