"""Game session: one human against one synthesized opponent."""

import logging
import random
import threading
from enum import Enum

import chess

from decision import DecisionEngine
from errors import IllegalPlayerMove, OutOfTurn, SessionBusy
from models import DEFAULT_POLICY, Decision, EvaluatorWeights, Profile, RatingPolicy

logger = logging.getLogger(__name__)


class SessionState(Enum):
    PLAYER_TO_MOVE = "player_to_move"
    BOT_TO_MOVE = "bot_to_move"
    THINKING = "thinking"
    GAME_OVER = "game_over"


class GameSession:
    """
    Owns the board, the SAN history and the optional engine advisor of
    one game. At most one bot decision is in flight at a time.
    """

    def __init__(
        self,
        profile: Profile,
        *,
        bot_color: chess.Color = chess.BLACK,
        fen: str | None = None,
        advisor=None,
        rng: random.Random | None = None,
        policy: RatingPolicy = DEFAULT_POLICY,
        weights: EvaluatorWeights | None = None,
    ):
        self.profile = profile
        self.bot_color = bot_color
        self.board = chess.Board(fen) if fen else chess.Board()
        # a custom start position cannot be followed through the corpus
        self.history: list[str] | None = [] if fen is None else None
        self.advisor = advisor
        self.engine = DecisionEngine(profile, policy=policy, weights=weights, advisor=advisor, rng=rng)
        self.last_decision: Decision | None = None
        self._lock = threading.Lock()
        self._advance()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def fen(self) -> str:
        return self.board.fen()

    @property
    def moves(self) -> list[str]:
        return [m.uci() for m in self.board.move_stack]

    def _turn_state(self) -> SessionState:
        if self.board.is_game_over(claim_draw=False):
            return SessionState.GAME_OVER
        if self.board.turn == self.bot_color:
            return SessionState.BOT_TO_MOVE
        return SessionState.PLAYER_TO_MOVE

    def _advance(self) -> None:
        self._state = self._turn_state()
        if self._state is SessionState.GAME_OVER and self.advisor is not None:
            logger.info("Game over (%s); releasing the engine", self.board.result(claim_draw=False))
            self.close()

    def _push(self, move: chess.Move) -> str:
        san = self.board.san(move)
        self.board.push(move)
        if self.history is not None:
            self.history.append(san)
        return san

    def play(self, san: str) -> str:
        """Apply the human's move. Returns it in SAN."""
        if not self._lock.acquire(blocking=False):
            raise SessionBusy("the opponent is thinking")
        try:
            if self._state is not SessionState.PLAYER_TO_MOVE:
                raise OutOfTurn(f"cannot play a player move in state {self._state.value}")
            try:
                move = self.board.parse_san(san)
            except ValueError as e:
                raise IllegalPlayerMove(f"{san}: {e}") from e
            played = self._push(move)
            logger.debug("Player played %s", played)
            self._advance()
            return played
        finally:
            self._lock.release()

    def bot_move(self) -> Decision | None:
        """
        Decide and apply the opponent's move. Returns None when the game
        is already over.
        """
        if not self._lock.acquire(blocking=False):
            raise SessionBusy("a decision is already pending")
        try:
            if self._state is SessionState.GAME_OVER:
                return None
            if self._state is not SessionState.BOT_TO_MOVE:
                raise OutOfTurn(f"not the opponent's turn ({self._state.value})")
            self._state = SessionState.THINKING
            try:
                decision = self.engine.decide(self.board, self.history)
                if decision is not None:
                    self._push(self.board.parse_san(decision.move))
                    self.last_decision = decision
            finally:
                self._advance()
            return decision
        finally:
            self._lock.release()

    def close(self) -> None:
        if self.advisor is not None:
            self.advisor.close()
            self.advisor = None
            self.engine.advisor = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
