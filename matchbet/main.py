import logging
import random
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from . import engine, schemas
from .config import Settings, load_settings
from .controller import GameController
from .errors import InvalidInput, PhaseError, PlayerNotFound, ValidationFailure
from .generator import MatchSource
from .money import format_cents, from_cents


def build_controller(settings: Settings, rng: Optional[random.Random] = None) -> GameController:
    return GameController(
        MatchSource.from_settings(settings, rng=rng),
        round_bonus=settings.round_bonus,
        starting_balance=settings.starting_balance,
        rng=rng,
    )


def get_controller(request: Request) -> GameController:
    return request.app.state.controller


def build_state(controller: GameController) -> schemas.StateResponse:
    snap = controller.snapshot()
    match = None
    if snap.current_match is not None:
        match = schemas.MatchItem.from_match(
            snap.current_match, engine.odds_table(snap.current_match.odds)
        )
    return schemas.StateResponse(
        phase=snap.phase.value,
        round_number=snap.round_number,
        round_bonus=from_cents(snap.round_bonus),
        players=[schemas.PlayerItem.from_player(p) for p in snap.players],
        match=match,
        next_match_ready=snap.next_match_ready,
        results=[schemas.SettlementItem.from_result(r) for r in snap.results],
        journal=[schemas.JournalItem(**entry) for entry in snap.journal],
    )


def create_app(settings: Optional[Settings] = None, controller: Optional[GameController] = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Matchday Betting Simulation",
        description="Round-based virtual betting on generated football matches.",
    )
    app.state.controller = controller or build_controller(settings)

    @app.exception_handler(ValidationFailure)
    async def validation_failure_handler(request: Request, exc: ValidationFailure):
        return JSONResponse(
            status_code=422, content={"detail": "Bets are invalid", "errors": exc.errors}
        )

    @app.exception_handler(PhaseError)
    async def phase_error_handler(request: Request, exc: PhaseError):
        return JSONResponse(status_code=409, content={"detail": str(exc), "errors": []})

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        status_code = 404 if isinstance(exc, PlayerNotFound) else 400
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "errors": []})

    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        return RedirectResponse(url="/api/state")

    @app.get("/api/state", response_model=schemas.StateResponse)
    async def api_state(controller: GameController = Depends(get_controller)):
        return build_state(controller)

    # ----- setup -----

    @app.post("/api/players", response_model=schemas.PlayerItem, status_code=201)
    async def api_add_player(
        payload: schemas.PlayerCreate, controller: GameController = Depends(get_controller)
    ):
        player = controller.add_player(payload.name, payload.starting_balance)
        return schemas.PlayerItem.from_player(player)

    @app.delete("/api/players/{player_id}")
    async def api_remove_player(player_id: str, controller: GameController = Depends(get_controller)):
        player = controller.remove_player(player_id)
        return {"status": "ok", "player_id": player.id}

    @app.put("/api/settings/round_bonus")
    async def api_round_bonus(
        payload: schemas.RoundBonusUpdate, controller: GameController = Depends(get_controller)
    ):
        cents = controller.set_round_bonus(payload.amount)
        return {"round_bonus": format_cents(cents)}

    @app.post("/api/game/start", response_model=schemas.StateResponse)
    async def api_start(controller: GameController = Depends(get_controller)):
        await controller.start_game()
        return build_state(controller)

    # ----- betting -----

    @app.put("/api/players/{player_id}/bet", response_model=schemas.PlayerItem)
    async def api_bet(
        player_id: str,
        payload: schemas.BetUpdate,
        controller: GameController = Depends(get_controller),
    ):
        player = controller.ledger.get(player_id)
        if payload.choice is not None:
            player = controller.set_choice(player_id, payload.choice)
        if payload.all_in:
            player = controller.all_in(player_id)
        elif payload.amount is not None:
            player = controller.set_wager(player_id, payload.amount)
        return schemas.PlayerItem.from_player(player)

    @app.post("/api/players/{player_id}/bet/adjust", response_model=schemas.PlayerItem)
    async def api_bet_adjust(
        player_id: str,
        payload: schemas.BetAdjust,
        controller: GameController = Depends(get_controller),
    ):
        player = controller.adjust_wager(player_id, payload.delta)
        return schemas.PlayerItem.from_player(player)

    @app.post("/api/game/lock", response_model=schemas.StateResponse)
    async def api_lock(controller: GameController = Depends(get_controller)):
        controller.lock_bets()
        return build_state(controller)

    @app.post("/api/game/resolve", response_model=schemas.StateResponse)
    async def api_resolve(
        background_tasks: BackgroundTasks, controller: GameController = Depends(get_controller)
    ):
        await controller.resolve()
        # warm the next round while the narrative plays
        background_tasks.add_task(controller.prefetch_next_match)
        return build_state(controller)

    @app.post("/api/game/next", response_model=schemas.StateResponse)
    async def api_next(controller: GameController = Depends(get_controller)):
        await controller.next_round()
        return build_state(controller)

    @app.get("/api/results", response_model=List[schemas.SettlementItem])
    async def api_results(controller: GameController = Depends(get_controller)):
        return [schemas.SettlementItem.from_result(r) for r in controller.snapshot().results]

    return app


app = create_app()
