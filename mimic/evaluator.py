"""
Heuristic position evaluation.

Scores every legal move by trialing it on a throwaway copy of the board
and summing weighted signals from an EvaluatorWeights table: material
won, checkmate, check, centre occupation, development, castling,
promotion and whether the moved piece is left en prise. Also hosts the
priority-ordered fallback used when the scored path is unavailable.
"""

import random
from collections.abc import Callable, Sequence

import chess

from models import DEFAULT_WEIGHTS, EvaluatorWeights, ScoredMove

CENTER = chess.SquareSet([chess.D4, chess.D5, chess.E4, chess.E5])
EXTENDED_CENTER = chess.SquareSet([
    chess.C3, chess.C4, chess.C5, chess.C6,
    chess.D3, chess.D6, chess.E3, chess.E6,
    chess.F3, chess.F4, chess.F5, chess.F6,
])


def piece_value(piece_type: chess.PieceType | None, weights: EvaluatorWeights = DEFAULT_WEIGHTS) -> float:
    if piece_type is None:
        return 0.0
    return weights.piece_values.get(chess.piece_symbol(piece_type), 0.0)


def captured_piece_type(board: chess.Board, move: chess.Move) -> chess.PieceType | None:
    """Type of the piece a move captures, or None for quiet moves."""
    if not board.is_capture(move):
        return None
    if board.is_en_passant(move):
        return chess.PAWN
    return board.piece_type_at(move.to_square)


def is_development(board: chess.Board, move: chess.Move) -> bool:
    """Knight or bishop leaving its own back rank."""
    piece = board.piece_at(move.from_square)
    if piece is None or piece.piece_type not in (chess.KNIGHT, chess.BISHOP):
        return False
    back_rank = 0 if piece.color == chess.WHITE else 7
    return chess.square_rank(move.from_square) == back_rank


def _resolve_moves(board: chess.Board, legal_moves: Sequence[str] | None) -> list[tuple[str, chess.Move]]:
    if legal_moves is None:
        return [(board.san(move), move) for move in board.legal_moves]
    resolved = []
    for san in legal_moves:
        try:
            resolved.append((san, board.parse_san(san)))
        except ValueError:
            continue
    return resolved


def _score_move(trial: chess.Board, move: chess.Move, ply: int, weights: EvaluatorWeights) -> float:
    """Heuristic score of one move. Leaves trial exactly as it found it."""
    mover = trial.piece_at(move.from_square)
    mover_value = piece_value(mover.piece_type, weights)
    color = trial.turn
    score = 0.0

    if trial.is_capture(move):
        captured = captured_piece_type(trial, move)
        score += weights.capture * piece_value(captured, weights)
        score -= weights.risk_discount * mover_value
    if trial.is_castling(move):
        score += weights.castling
    elif mover.piece_type == chess.KING and ply < weights.king_safety_ply:
        score -= weights.early_king_move
    if move.promotion:
        score += weights.promotion * piece_value(move.promotion, weights) / piece_value(chess.QUEEN, weights)
    if ply < weights.opening_ply and is_development(trial, move):
        score += weights.development
    if move.to_square in CENTER:
        score += weights.center
    elif move.to_square in EXTENDED_CENTER:
        score += weights.extended_center

    trial.push(move)
    try:
        if trial.is_checkmate():
            return weights.mate
        if trial.is_check():
            score += weights.check
        attackers = len(trial.attackers(not color, move.to_square))
        defenders = len(trial.attackers(color, move.to_square))
        if attackers > defenders:
            landed = trial.piece_type_at(move.to_square)
            score -= weights.hanging_penalty * piece_value(landed, weights)
    finally:
        trial.pop()
    return score


def evaluate(
    board: chess.Board,
    legal_moves: Sequence[str] | None = None,
    *,
    ply: int | None = None,
    weights: EvaluatorWeights = DEFAULT_WEIGHTS,
    rng: random.Random | None = None,
) -> list[ScoredMove]:
    """
    Score each legal move (all of them when legal_moves is None), best first.

    ply is the game's length so far and defaults to the board's own ply
    count; it decides whether development still earns a bonus. board is
    never modified. Strings in legal_moves that do not parse as legal
    moves are skipped.
    """
    rng = rng or random
    trial = board.copy(stack=False)
    ply = board.ply() if ply is None else ply
    scored = []
    for san, move in _resolve_moves(trial, legal_moves):
        score = _score_move(trial, move, ply, weights)
        score += rng.uniform(0.0, weights.jitter)
        scored.append(ScoredMove(move=san, score=score))
    scored.sort(key=lambda s: -s.score)
    return scored


def find_mate_in_one(board: chess.Board) -> str | None:
    """SAN of a move that mates immediately, if there is one."""
    trial = board.copy(stack=False)
    for move in list(trial.legal_moves):
        trial.push(move)
        mate = trial.is_checkmate()
        trial.pop()
        if mate:
            return board.san(move)
    return None


def allows_mate_in_one(board: chess.Board, move: chess.Move) -> bool:
    """Whether the opponent can mate at once after move. board is restored."""
    board.push(move)
    try:
        for reply in list(board.legal_moves):
            board.push(reply)
            mate = board.is_checkmate()
            board.pop()
            if mate:
                return True
        return False
    finally:
        board.pop()


def good_captures(board, moves, ply, weights):
    """Captures that still win material if the capturing piece is taken back."""
    best_gain = 0.0
    best = []
    for move in moves:
        if not board.is_capture(move):
            continue
        gain = piece_value(captured_piece_type(board, move), weights)
        mover = board.piece_type_at(move.from_square)
        board.push(move)
        recapturable = board.is_attacked_by(board.turn, move.to_square)
        board.pop()
        if recapturable:
            gain -= piece_value(mover, weights)
        if gain > best_gain:
            best_gain, best = gain, [move]
        elif gain == best_gain and gain > 0:
            best.append(move)
    return best


def development_moves(board, moves, ply, weights):
    if ply >= weights.opening_ply:
        return []
    return [m for m in moves if is_development(board, m) and not board.is_capture(m)]


def central_pawn_moves(board, moves, ply, weights):
    return [
        m for m in moves
        if board.piece_type_at(m.from_square) == chess.PAWN
        and (m.to_square in CENTER or m.to_square in EXTENDED_CENTER)
    ]


def castling_moves(board, moves, ply, weights):
    return [m for m in moves if board.is_castling(m)]


FALLBACK_RULES: list[tuple[Callable, str]] = [
    (good_captures, "good capture"),
    (development_moves, "development"),
    (central_pawn_moves, "central pawn"),
    (castling_moves, "castling"),
]


def priority_move(
    board: chess.Board,
    *,
    ply: int | None = None,
    weights: EvaluatorWeights = DEFAULT_WEIGHTS,
    rng: random.Random | None = None,
) -> tuple[str, str] | None:
    """
    Pick a move by fixed priorities: mate, then the first FALLBACK_RULES
    rule with a match among moves that do not allow mate in one, then any
    such safe move. Returns (san, rule label), or None with no legal moves.
    """
    rng = rng or random
    trial = board.copy(stack=False)
    ply = board.ply() if ply is None else ply
    moves = list(trial.legal_moves)
    if not moves:
        return None

    mate = find_mate_in_one(trial)
    if mate:
        return mate, "checkmate"

    safe = [m for m in moves if not allows_mate_in_one(trial, m)] or moves
    for rule, label in FALLBACK_RULES:
        picks = rule(trial, safe, ply, weights)
        if picks:
            return trial.san(rng.choice(picks)), label
    return trial.san(rng.choice(safe)), "random safe"
