"""Data models for the opponent move-decision core."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from corpus import MoveCorpus

MIN_RATING = 400
MAX_RATING = 3200
DEFAULT_RATING = 1200
DEFAULT_GAME_LENGTH = 40.0


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def clamp_rating(rating: int) -> int:
    return int(max(MIN_RATING, min(MAX_RATING, rating)))


class MoveSource(Enum):
    """Provenance of a chosen move."""

    CORPUS = "Corpus"
    EVALUATED = "Evaluated"
    FALLBACK = "Fallback"
    EMERGENCY = "Emergency"


@dataclass(frozen=True)
class Personality:
    """Playing-style traits derived from a player's games, each in [0, 1]."""

    aggression: float = 0.5
    tactics: float = 0.5
    speed: float = 0.5
    win_rate: float = 0.5

    def __post_init__(self):
        for name in ("aggression", "tactics", "speed", "win_rate"):
            object.__setattr__(self, name, clamp(float(getattr(self, name))))

    @classmethod
    def neutral(cls) -> "Personality":
        return cls()


@dataclass(frozen=True)
class RatingProfile:
    """Rating and personality of the synthesized opponent. Immutable for a game."""

    rating: int = DEFAULT_RATING
    personality: Personality = field(default_factory=Personality)
    games_analyzed: int = 0

    def __post_init__(self):
        object.__setattr__(self, "rating", clamp_rating(self.rating))
        object.__setattr__(self, "games_analyzed", max(0, int(self.games_analyzed)))


@dataclass(frozen=True)
class Profile:
    """Everything the decision engine needs about one opponent."""

    corpus: "MoveCorpus"
    rating: int = DEFAULT_RATING
    personality: Personality = field(default_factory=Personality)
    games_analyzed: int = 0
    # average plies per game and counts of the first two moves ("e4 c5")
    game_length: float = DEFAULT_GAME_LENGTH
    preferred_openings: dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "rating", clamp_rating(self.rating))
        object.__setattr__(self, "games_analyzed", max(0, int(self.games_analyzed)))

    @property
    def rating_profile(self) -> RatingProfile:
        return RatingProfile(self.rating, self.personality, self.games_analyzed)


@dataclass(frozen=True)
class Candidate:
    """A corpus continuation that is legal in the current position."""

    move: str
    games: int


@dataclass(frozen=True)
class ScoredMove:
    move: str
    score: float


@dataclass(frozen=True)
class Decision:
    """One turn's chosen move with provenance."""

    move: str
    source: MoveSource
    confidence: float

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp(float(self.confidence)))

    def to_dict(self) -> dict:
        return {"move": self.move, "source": self.source.value, "confidence": self.confidence}


@dataclass(frozen=True)
class RatingPolicy:
    """
    Rating-driven curves for corpus following and evaluator strength.

    The numbers are empirically tuned; keep them here rather than in the
    decision code so a recalibration is a data change.
    """

    opening_ply_limit: int = 20
    base_follow: float = 0.85
    follow_bands: tuple[tuple[int, float], ...] = ((2200, 0.95), (1800, 0.90))
    low_rating: int = 1200
    low_follow: float = 0.75
    frequency_adjust: float = 0.05
    high_frequency: float = 0.6
    low_frequency: float = 0.3
    depth_decay: tuple[tuple[int, float], ...] = ((15, 0.8), (10, 0.9))
    dominant_share: float = 0.7
    main_line_share: float = 0.4
    main_line_rate: float = 0.9
    rank_decay: float = 0.8
    top_k_bands: tuple[tuple[int, int], ...] = ((2200, 2), (1800, 3), (1400, 5))
    default_top_k: int = 8


@dataclass(frozen=True)
class EvaluatorWeights:
    """Weight table for the heuristic position evaluator, in pawn units."""

    piece_values: dict[str, float] = field(
        default_factory=lambda: {"p": 1.0, "n": 3.0, "b": 3.0, "r": 5.0, "q": 9.0, "k": 0.0}
    )
    capture: float = 1.0
    risk_discount: float = 0.1
    mate: float = 1000.0
    check: float = 0.5
    center: float = 0.3
    extended_center: float = 0.15
    development: float = 0.25
    opening_ply: int = 16
    hanging_penalty: float = 0.8
    jitter: float = 0.1
    castling: float = 0.6
    promotion: float = 8.0
    early_king_move: float = 0.3
    king_safety_ply: int = 40

    def for_personality(self, personality: Personality) -> "EvaluatorWeights":
        """
        Scale the check term by aggression and the capture term by tactics.
        A neutral personality (0.5) leaves the table unchanged.
        """
        return replace(
            self,
            check=self.check * (0.5 + personality.aggression),
            capture=self.capture * (0.5 + personality.tactics),
        )


DEFAULT_POLICY = RatingPolicy()
DEFAULT_WEIGHTS = EvaluatorWeights()
