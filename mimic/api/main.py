"""
FastAPI service for playing against a synthesized opponent

Endpoints:
  POST   /profile              - Build an opponent profile from game records
  GET    /profile/{id}         - Profile summary
  POST   /game                 - Start a game against a profile
  GET    /game/{id}            - Game state
  POST   /game/{id}/player     - Apply the human's move
  POST   /game/{id}/bot        - Let the opponent move
  DELETE /game/{id}            - End a game and release its engine

Run:
  uvicorn main:app --app-dir mimic/api
  MIMIC_ENGINE=1 STOCKFISH_PATH=/usr/bin/stockfish uvicorn main:app --app-dir mimic/api
"""

import logging
import os
import sys
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import chess
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from engine_advisor import STOCKFISH_PATH, EngineAdvisor
from errors import EvaluatorUnavailable, IllegalPlayerMove, OutOfTurn, SessionBusy
from models import Profile
from profile_builder import build_profile
from session import GameSession, SessionState

logger = logging.getLogger(__name__)

ENGINE_ENABLED = os.environ.get("MIMIC_ENGINE", "0") == "1"

PROFILES: dict[str, Profile] = {}
SESSIONS: dict[str, GameSession] = {}


def close_sessions() -> None:
    """Close every open game, stopping any engine processes."""
    while SESSIONS:
        _, session = SESSIONS.popitem()
        session.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_sessions()


app = FastAPI(title="Mimic Opponent API", version="1.0.0", lifespan=lifespan)


class GameRecord(BaseModel):
    moves: list[str]
    result: Literal["win", "loss", "draw"] | None = None
    time_control: str | int | None = None
    rating: int | None = None


class ProfileRequest(BaseModel):
    games: list[GameRecord] = Field(default_factory=list)
    rating: int | None = None


class GameRequest(BaseModel):
    profile_id: str
    bot_color: Literal["white", "black"] = "black"
    fen: str | None = None


class PlayerMoveRequest(BaseModel):
    move: str  # SAN, e.g. "Nf3"


def profile_summary(profile_id: str, profile: Profile) -> dict:
    p = profile.personality
    return {
        "profile_id": profile_id,
        "rating": profile.rating,
        "personality": {
            "aggression": p.aggression,
            "tactics": p.tactics,
            "speed": p.speed,
            "winRate": p.win_rate,
        },
        "gamesAnalyzed": profile.games_analyzed,
        "gameLength": profile.game_length,
        "preferredOpenings": profile.preferred_openings,
        "rootMoves": profile.corpus.root_moves(),
        "corpusSize": profile.corpus.size(),
    }


def game_to_response(game_id: str, session: GameSession) -> dict:
    return {
        "game_id": game_id,
        "fen": session.fen,
        "state": session.state.value,
        "bot_color": "white" if session.bot_color == chess.WHITE else "black",
        "history": session.moves,
        "game_over": session.state is SessionState.GAME_OVER,
        "result": session.board.result(claim_draw=False),
    }


def get_session(game_id: str) -> GameSession:
    session = SESSIONS.get(game_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return session


def open_advisor(profile: Profile) -> EngineAdvisor | None:
    if not ENGINE_ENABLED:
        return None
    try:
        return EngineAdvisor.popen(STOCKFISH_PATH, rating=profile.rating, personality=profile.personality)
    except EvaluatorUnavailable as e:
        logger.warning("Playing without engine: %s", e)
        return None


@app.post("/profile")
def create_profile(body: ProfileRequest):
    """Build and store a profile. Unusable input yields the default profile."""
    records = [g.model_dump(exclude_none=True) for g in body.games]
    profile = build_profile(records, rating=body.rating)
    profile_id = uuid.uuid4().hex
    PROFILES[profile_id] = profile
    return profile_summary(profile_id, profile)


@app.get("/profile/{profile_id}")
def get_profile(profile_id: str):
    profile = PROFILES.get(profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile_summary(profile_id, profile)


@app.post("/game")
def create_game(body: GameRequest):
    profile = PROFILES.get(body.profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    if body.fen is not None:
        try:
            chess.Board(body.fen)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid FEN: {e}")
    bot_color = chess.WHITE if body.bot_color == "white" else chess.BLACK
    session = GameSession(profile, bot_color=bot_color, fen=body.fen, advisor=open_advisor(profile))
    game_id = uuid.uuid4().hex
    SESSIONS[game_id] = session
    return game_to_response(game_id, session)


@app.get("/game/{game_id}")
def get_game(game_id: str):
    return game_to_response(game_id, get_session(game_id))


@app.post("/game/{game_id}/player")
def player_move(game_id: str, body: PlayerMoveRequest):
    session = get_session(game_id)
    try:
        san = session.play(body.move)
    except IllegalPlayerMove as e:
        raise HTTPException(status_code=400, detail=f"Invalid move: {e}")
    except (OutOfTurn, SessionBusy) as e:
        raise HTTPException(status_code=409, detail=str(e))
    out = game_to_response(game_id, session)
    out["move"] = san
    return out


@app.post("/game/{game_id}/bot")
def bot_move(game_id: str):
    session = get_session(game_id)
    try:
        decision = session.bot_move()
    except (OutOfTurn, SessionBusy) as e:
        raise HTTPException(status_code=409, detail=str(e))
    out = game_to_response(game_id, session)
    out["decision"] = decision.to_dict() if decision else None
    out["move"] = decision.move if decision else None
    return out


@app.delete("/game/{game_id}")
def end_game(game_id: str):
    session = SESSIONS.pop(game_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="Game not found")
    session.close()
    return {"game_id": game_id, "closed": True}


@app.get("/health")
def health():
    return {"status": "ok", "engine": ENGINE_ENABLED}
