"""
Optional deep evaluation through a UCI engine (Stockfish).

The advisor is an explicit handle owned by one game session: it is
opened with the session, strength-limited to the opponent's rating and
closed with the session. A newer request stops the analysis still in
flight, and every request is bounded by an overall timeout.

Usage:
  STOCKFISH_PATH=/usr/bin/stockfish MIMIC_ENGINE_TIMEOUT=3 python engine_advisor.py --rating 1500
"""

import argparse
import logging
import os
import sys
import threading
from pathlib import Path

import chess
import chess.engine

sys.path.insert(0, str(Path(__file__).resolve().parent))
from errors import EvaluatorTimeout, EvaluatorUnavailable
from models import DEFAULT_RATING, Personality, ScoredMove, clamp_rating

logger = logging.getLogger(__name__)

STOCKFISH_PATH = os.environ.get("STOCKFISH_PATH", "stockfish")
ENGINE_TIMEOUT = float(os.environ.get("MIMIC_ENGINE_TIMEOUT", "5.0"))
MATE_SCORE = 1000.0
MAX_CONTEMPT = 50
TACTICAL_LINES = 3
TACTICAL_THRESHOLD = 0.6


def elo_to_depth(elo: int) -> int:
    """Search depth for a target rating."""
    e = clamp_rating(elo)
    if e < 800:
        return 6
    if e < 1200:
        return 8
    if e < 1600:
        return 10
    if e < 2000:
        return 12
    if e < 2400:
        return 16
    return 20


def think_time(personality: Personality) -> float:
    """Seconds per move: fast players think less."""
    if personality.speed > 0.6:
        return 0.5
    if personality.speed > 0.3:
        return 1.5
    return 3.0


def contempt(personality: Personality) -> int:
    """Contempt in centipawns: aggressive players avoid draws."""
    return int(personality.aggression * MAX_CONTEMPT)


def min_lines(personality: Personality) -> int:
    """Tactical players look at several principal variations."""
    return TACTICAL_LINES if personality.tactics > TACTICAL_THRESHOLD else 1


def option_value(option: chess.engine.Option, value: int) -> int:
    """value clamped to the range a UCI spin option advertises."""
    if option.min is not None:
        value = max(option.min, value)
    if option.max is not None:
        value = min(option.max, value)
    return value


def score_to_pawns(score: chess.engine.PovScore, turn: chess.Color) -> float:
    """Engine score in pawns from the side to move's perspective. Mate capped at ±1000."""
    pov = score.pov(turn)
    if pov.is_mate():
        return MATE_SCORE if pov.mate() > 0 else -MATE_SCORE
    return pov.score(mate_score=100000) / 100.0


class EngineAdvisor:
    """Strength-limited engine scoring of candidate moves."""

    def __init__(
        self,
        engine: chess.engine.SimpleEngine,
        *,
        rating: int = DEFAULT_RATING,
        personality: Personality | None = None,
        timeout: float = ENGINE_TIMEOUT,
    ):
        self.engine = engine
        self.rating = clamp_rating(rating)
        self.personality = personality or Personality.neutral()
        self.timeout = timeout
        self._lock = threading.Lock()
        self._pending = None
        self._generation = 0
        self._closed = False
        self.configure_strength(self.rating)
        self.configure_style(self.personality)

    @classmethod
    def popen(cls, path: str = STOCKFISH_PATH, **kwargs) -> "EngineAdvisor":
        try:
            engine = chess.engine.SimpleEngine.popen_uci(path)
        except (FileNotFoundError, PermissionError, chess.engine.EngineError) as e:
            raise EvaluatorUnavailable(f"cannot start engine at {path}: {e}") from e
        return cls(engine, **kwargs)

    def configure_strength(self, rating: int) -> None:
        """Limit the engine to rating, within the UCI_Elo range it advertises."""
        option = self.engine.options.get("UCI_Elo")
        if option is None:
            logger.info("Engine has no UCI_Elo option; playing at full strength")
            return
        elo = option_value(option, rating)
        try:
            self.engine.configure({"UCI_LimitStrength": True, "UCI_Elo": elo})
        except chess.engine.EngineError as e:
            logger.warning("Could not limit engine strength to %s: %s", elo, e)

    def configure_style(self, personality: Personality) -> None:
        """Set Contempt from aggression when the engine supports it."""
        option = self.engine.options.get("Contempt")
        if option is None:
            logger.debug("Engine has no Contempt option")
            return
        value = option_value(option, contempt(personality))
        try:
            self.engine.configure({"Contempt": value})
        except chess.engine.EngineError as e:
            logger.warning("Could not set contempt to %s: %s", value, e)

    def limit(self) -> chess.engine.Limit:
        return chess.engine.Limit(depth=elo_to_depth(self.rating), time=think_time(self.personality))

    def cancel(self) -> None:
        """Stop the analysis in flight, if any. Its caller gets EvaluatorUnavailable."""
        with self._lock:
            pending = self._pending
            self._generation += 1
        if pending is not None:
            try:
                pending.stop()
            except chess.engine.EngineTerminatedError:
                pass

    def score_moves(self, board: chess.Board, multipv: int = 1) -> list[ScoredMove]:
        """
        Engine evaluation of the top multipv moves, best first. Tactical
        profiles always ask for at least TACTICAL_LINES lines.

        Raises EvaluatorTimeout when the overall timeout expires and
        EvaluatorUnavailable when the engine fails, is closed, or the
        request is superseded by a newer one.
        """
        if self._closed:
            raise EvaluatorUnavailable("engine advisor is closed")
        self.cancel()
        with self._lock:
            generation = self._generation
            try:
                lines_wanted = max(1, multipv, min_lines(self.personality))
                analysis = self.engine.analysis(board, self.limit(), multipv=lines_wanted)
            except (chess.engine.EngineError, chess.engine.EngineTerminatedError) as e:
                raise EvaluatorUnavailable(str(e)) from e
            self._pending = analysis

        timed_out = threading.Event()

        def expire():
            timed_out.set()
            analysis.stop()

        timer = threading.Timer(self.timeout, expire)
        timer.daemon = True
        timer.start()
        try:
            analysis.wait()
            lines = analysis.multipv
        except (chess.engine.EngineError, chess.engine.EngineTerminatedError) as e:
            raise EvaluatorUnavailable(str(e)) from e
        finally:
            timer.cancel()
            with self._lock:
                if self._pending is analysis:
                    self._pending = None
                superseded = generation != self._generation

        if timed_out.is_set():
            raise EvaluatorTimeout(f"engine exceeded {self.timeout:.1f}s")
        if superseded:
            raise EvaluatorUnavailable("analysis superseded by a newer request")

        scored = []
        seen = set()
        for info in lines:
            pv = info.get("pv")
            score = info.get("score")
            if not pv or score is None:
                continue
            san = board.san(pv[0])
            if san in seen:
                continue
            seen.add(san)
            scored.append(ScoredMove(move=san, score=score_to_pawns(score, board.turn)))
        if not scored:
            raise EvaluatorUnavailable("engine returned no usable lines")
        scored.sort(key=lambda s: -s.score)
        return scored

    def close(self) -> None:
        if self._closed:
            return
        self.cancel()
        self._closed = True
        try:
            self.engine.quit()
        except (chess.engine.EngineError, chess.engine.EngineTerminatedError) as e:
            logger.warning("Engine did not quit cleanly: %s", e)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def main():
    parser = argparse.ArgumentParser(description="Score the legal moves of a position with Stockfish")
    parser.add_argument("--fen", default=chess.STARTING_FEN)
    parser.add_argument("--rating", type=int, default=DEFAULT_RATING)
    parser.add_argument("--lines", type=int, default=3)
    args = parser.parse_args()

    try:
        with EngineAdvisor.popen(STOCKFISH_PATH, rating=args.rating) as advisor:
            for scored in advisor.score_moves(chess.Board(args.fen), args.lines):
                print(f"  {scored.move:8s} {scored.score:+.2f}")
    except EvaluatorUnavailable as e:
        print(f"Engine unavailable: {e}. Install Stockfish or set STOCKFISH_PATH.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
