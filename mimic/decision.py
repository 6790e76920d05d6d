#!/usr/bin/env python3
"""
Per-turn move decision for the synthesized opponent.

Each turn runs a fixed state machine:

  CheckForcedMate -> TryCorpus -> TryEvaluator -> Fallback -> Emergency -> Done

A state either produces a legal move (Done) or hands over to the next
one. The corpus is only consulted in the opening; the evaluator narrows
its choice to the top-K moves for the opponent's rating; the fallback
applies fixed priorities; the emergency state takes the first legal
move, so a legal move always comes back unless the game is over.

Usage:
  python decision.py --profile profile.json --moves "e4 e5 Nf3"
  python decision.py --fen "r1bqkbnr/pppp1ppp/2n5/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R w KQkq - 2 3" --rating 1800
"""

import argparse
import logging
import random
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence

import chess

sys.path.insert(0, str(Path(__file__).resolve().parent))
from errors import EvaluatorUnavailable, IllegalMoveProduced
from evaluator import evaluate, find_mate_in_one, priority_move
from models import (
    DEFAULT_POLICY,
    DEFAULT_WEIGHTS,
    Candidate,
    Decision,
    EvaluatorWeights,
    MoveSource,
    Profile,
    RatingPolicy,
    ScoredMove,
    clamp,
)
from navigator import history_from_board, legal_sans, navigate

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3
EVALUATED_CONFIDENCE_CAP = 0.9


class DecisionState(Enum):
    CHECK_FORCED_MATE = "CheckForcedMate"
    TRY_CORPUS = "TryCorpus"
    TRY_EVALUATOR = "TryEvaluator"
    FALLBACK = "Fallback"
    EMERGENCY = "Emergency"
    DONE = "Done"


NEXT_STATE = {
    DecisionState.CHECK_FORCED_MATE: DecisionState.TRY_CORPUS,
    DecisionState.TRY_CORPUS: DecisionState.TRY_EVALUATOR,
    DecisionState.TRY_EVALUATOR: DecisionState.FALLBACK,
    DecisionState.FALLBACK: DecisionState.EMERGENCY,
    DecisionState.EMERGENCY: DecisionState.DONE,
}


def _band(rating: int, bands: Sequence[tuple[int, float]], default):
    for threshold, value in sorted(bands, reverse=True):
        if rating >= threshold:
            return value
    return default


def follow_probability(
    rating: int, top_frequency: float, depth: int, policy: RatingPolicy = DEFAULT_POLICY
) -> float:
    """Chance of honouring the corpus at this rating, line popularity and depth."""
    if rating < policy.low_rating:
        p = policy.low_follow
    else:
        p = _band(rating, policy.follow_bands, policy.base_follow)
    if top_frequency > policy.high_frequency:
        p += policy.frequency_adjust
    elif top_frequency < policy.low_frequency:
        p -= policy.frequency_adjust
    for threshold, factor in sorted(policy.depth_decay, reverse=True):
        if depth > threshold:
            p *= factor
            break
    return clamp(p)


def select_corpus_move(
    candidates: Sequence[Candidate],
    rating: int,
    depth: int,
    policy: RatingPolicy = DEFAULT_POLICY,
    rng: random.Random | None = None,
) -> tuple[Candidate, float] | None:
    """
    Draw a corpus continuation, or None when the draw says to defer to
    the evaluator. The float is the chosen move's share of the games.
    """
    if not candidates:
        return None
    rng = rng or random
    ranked = sorted(candidates, key=lambda c: -c.games)
    total = sum(c.games for c in ranked)
    top = ranked[0]
    top_frequency = top.games / total

    if rng.random() >= follow_probability(rating, top_frequency, depth, policy):
        return None

    if top_frequency > policy.dominant_share or len(ranked) == 1:
        chosen = top
    elif top_frequency > policy.main_line_share:
        chosen = top if rng.random() < policy.main_line_rate else ranked[1]
    else:
        weights = [c.games * policy.rank_decay ** rank for rank, c in enumerate(ranked)]
        chosen = rng.choices(ranked, weights=weights, k=1)[0]
    return chosen, chosen.games / total


def top_k_for_rating(rating: int, policy: RatingPolicy = DEFAULT_POLICY) -> int:
    return _band(rating, policy.top_k_bands, policy.default_top_k)


def select_from_scored(
    scored: Sequence[ScoredMove],
    rating: int,
    policy: RatingPolicy = DEFAULT_POLICY,
    rng: random.Random | None = None,
) -> tuple[ScoredMove, int] | None:
    """Uniform pick among the top-K scored moves. Returns (move, rank)."""
    if not scored:
        return None
    rng = rng or random
    band = min(top_k_for_rating(rating, policy), len(scored))
    rank = rng.randrange(band)
    return scored[rank], rank


@dataclass
class Turn:
    """Inputs of one decision. board is a private copy."""

    board: chess.Board
    history: list[str]
    legal: list[str]
    from_start: bool = True

    def __post_init__(self):
        self.legal_set = set(self.legal)


class DecisionEngine:
    """Chooses one legal move per turn for a given opponent profile."""

    def __init__(
        self,
        profile: Profile,
        *,
        policy: RatingPolicy = DEFAULT_POLICY,
        weights: EvaluatorWeights | None = None,
        advisor=None,
        rng: random.Random | None = None,
    ):
        self.profile = profile
        self.policy = policy
        # default table follows the profile's aggression and tactics
        self.weights = weights if weights is not None else DEFAULT_WEIGHTS.for_personality(profile.personality)
        self.advisor = advisor
        self.rng = rng or random.Random()
        self._handlers = {
            DecisionState.CHECK_FORCED_MATE: self.check_forced_mate,
            DecisionState.TRY_CORPUS: self.try_corpus,
            DecisionState.TRY_EVALUATOR: self.try_evaluator,
            DecisionState.FALLBACK: self.fallback,
            DecisionState.EMERGENCY: self.emergency,
        }

    def decide(self, board: chess.Board, history: Sequence[str] | None = None) -> Decision | None:
        """
        Pick the move to play in board. history is the SAN sequence from
        the game start; it is rebuilt from the board's move stack when
        omitted. Returns None only when there are no legal moves.
        """
        legal = legal_sans(board)
        if not legal:
            logger.info("No legal moves (%s): game over", board.result(claim_draw=False))
            return None
        if history is None:
            history = history_from_board(board)
        # a board set up from a FEN has no path through the corpus
        from_start = board.root().fen() == chess.STARTING_FEN
        turn = Turn(board=board.copy(), history=list(history), legal=legal, from_start=from_start)

        state = DecisionState.CHECK_FORCED_MATE
        while state is not DecisionState.DONE:
            decision = self._run(state, turn)
            if decision is not None:
                logger.info(
                    "Ply %d: %s via %s (confidence %.2f)",
                    len(turn.history) + 1, decision.move, decision.source.value, decision.confidence,
                )
                return decision
            state = NEXT_STATE[state]
        return Decision(move=legal[0], source=MoveSource.EMERGENCY, confidence=0.0)

    def _run(self, state: DecisionState, turn: Turn) -> Decision | None:
        try:
            decision = self._handlers[state](turn)
        except EvaluatorUnavailable as e:
            logger.warning("%s: evaluator unavailable (%s)", state.value, e)
            return None
        except Exception:
            logger.exception("%s failed", state.value)
            return None
        if decision is None:
            logger.debug("%s -> %s", state.value, NEXT_STATE[state].value)
            return None
        if decision.move not in turn.legal_set:
            logger.warning("%s", IllegalMoveProduced(decision.move, state.value))
            return None
        return decision

    def check_forced_mate(self, turn: Turn) -> Decision | None:
        mate = find_mate_in_one(turn.board)
        if mate is None:
            return None
        return Decision(move=mate, source=MoveSource.EVALUATED, confidence=1.0)

    def try_corpus(self, turn: Turn) -> Decision | None:
        if not turn.from_start or len(turn.history) >= self.policy.opening_ply_limit:
            return None
        candidates = navigate(turn.history, self.profile.corpus, turn.legal)
        if candidates is None:
            logger.debug("Left the book after %d plies", len(turn.history))
            return None
        selection = select_corpus_move(
            candidates, self.profile.rating, len(turn.history), self.policy, self.rng
        )
        if selection is None:
            logger.debug("Corpus draw deferred to the evaluator")
            return None
        chosen, share = selection
        return Decision(move=chosen.move, source=MoveSource.CORPUS, confidence=share)

    def try_evaluator(self, turn: Turn) -> Decision | None:
        if self.advisor is not None:
            k = top_k_for_rating(self.profile.rating, self.policy)
            scored = self.advisor.score_moves(turn.board, multipv=k)
        else:
            scored = evaluate(
                turn.board, turn.legal, ply=len(turn.history), weights=self.weights, rng=self.rng
            )
        pick = select_from_scored(scored, self.profile.rating, self.policy, self.rng)
        if pick is None:
            return None
        scored_move, rank = pick
        confidence = EVALUATED_CONFIDENCE_CAP * (1.0 - rank / len(scored))
        return Decision(move=scored_move.move, source=MoveSource.EVALUATED, confidence=confidence)

    def fallback(self, turn: Turn) -> Decision | None:
        pick = priority_move(turn.board, ply=len(turn.history), weights=self.weights, rng=self.rng)
        if pick is None:
            return None
        move, rule = pick
        logger.debug("Fallback rule: %s", rule)
        return Decision(move=move, source=MoveSource.FALLBACK, confidence=FALLBACK_CONFIDENCE)

    def emergency(self, turn: Turn) -> Decision:
        return Decision(move=turn.legal[0], source=MoveSource.EMERGENCY, confidence=0.0)


def decide_move(
    position: chess.Board, history: Sequence[str] | None, profile: Profile, **kwargs
) -> Decision | None:
    """One-shot decision for position. kwargs go to DecisionEngine."""
    return DecisionEngine(profile, **kwargs).decide(position, history)


def main():
    from profile_builder import build_profile, load_profile

    parser = argparse.ArgumentParser(description="Decide the opponent's next move")
    parser.add_argument("--profile", help="Profile JSON written by profile_builder.py")
    parser.add_argument("--moves", default="", help='SAN history from the start, e.g. "e4 e5 Nf3"')
    parser.add_argument("--fen", default=None, help="Position to move in (history is then empty)")
    parser.add_argument("--rating", type=int, default=None, help="Override the profile rating")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    profile = load_profile(args.profile) if args.profile else build_profile([], rating=args.rating)
    if args.rating is not None and args.profile:
        profile = Profile(profile.corpus, args.rating, profile.personality, profile.games_analyzed)

    if args.fen:
        board = chess.Board(args.fen)
        history = None
    else:
        board = chess.Board()
        history = args.moves.split()
        for san in history:
            try:
                board.push_san(san)
            except ValueError as e:
                print(f"Error: invalid move {san}: {e}", file=sys.stderr)
                sys.exit(1)

    rng = random.Random(args.seed) if args.seed is not None else None
    decision = decide_move(board, history, profile, rng=rng)
    if decision is None:
        print(f"Game over: {board.result(claim_draw=False)}")
    else:
        print(f"{decision.move}  ({decision.source.value}, confidence {decision.confidence:.2f})")


if __name__ == "__main__":
    main()
