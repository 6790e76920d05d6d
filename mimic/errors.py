"""Exceptions raised inside the opponent core."""


class MimicError(Exception):
    pass


class EvaluatorUnavailable(MimicError):
    """The deep evaluation step could not produce a result."""


class EvaluatorTimeout(EvaluatorUnavailable):
    """The deep evaluation step exceeded its time budget."""


class IllegalMoveProduced(MimicError):
    """A decision stage proposed a move that is not legal in the position."""

    def __init__(self, move: str, stage: str):
        super().__init__(f"{stage} proposed illegal move {move!r}")
        self.move = move
        self.stage = stage


class SessionBusy(MimicError):
    """A decision is already being computed for this session."""


class OutOfTurn(MimicError):
    """A move was requested from the side that is not to move."""


class IllegalPlayerMove(MimicError):
    pass
