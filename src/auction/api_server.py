"""
FastAPI server for live auction control.

Provides HTTP endpoints for the auctioneer (start, shuffle, select, bid, sell,
mark unsold, cancel), read endpoints for the auction screens, and a WebSocket
room per tournament that streams committed auction events.
"""

import asyncio
import logging
from typing import Callable, Optional
from fastapi import Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import config
from .api_serializers import (
    AuctionResponse,
    BidRequest,
    ChangeTournamentRequest,
    SelectPlayerRequest,
    SellRequest,
    SoldDetailsRequest,
    TournamentRequest,
    serialize_max_bids,
    serialize_team_summary,
)
from .engine import AuctionEngine
from .errors import AuctionError
from .events import AUCTION_STATE, room_key
from .ledger import UNSET
from .models import is_valid_id

logger = logging.getLogger(__name__)


# ===== Helpers =====

def _respond(action: str, operation: Callable[[], dict]):
    """
    Run an engine operation and wrap the outcome in the response envelope.

    AuctionErrors map to their status code; anything else is logged and
    reported as a 500.
    """
    try:
        return operation()

    except AuctionError as e:
        logger.warning(f"Cannot {action}: {e.message}")
        return JSONResponse(status_code=e.status_code, content=jsonable_encoder(e.to_dict()))

    except Exception as e:
        logger.error(f"Failed to {action}: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={'success': False, 'message': f"Failed to {action}: {e}"}
        )


def get_engine(request: Request) -> AuctionEngine:
    return request.app.state.engine


def require_operator(x_admin_token: Optional[str] = Header(None)) -> None:
    """
    Gate for write endpoints.

    Open when AUCTION_ADMIN_TOKEN is unset; otherwise the X-Admin-Token
    header must match it.
    """
    if config.AUCTION_ADMIN_TOKEN and x_admin_token != config.AUCTION_ADMIN_TOKEN:
        logger.warning("Rejected auction write without a valid admin token")
        raise HTTPException(status_code=401, detail="Not authorized to run the auction")


# ===== App Factory =====

def create_app(engine: AuctionEngine) -> FastAPI:
    """
    Build the auction API around an engine.

    Args:
        engine: AuctionEngine serving every request

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Live Auction API",
        description="Run live player auctions for tournaments",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = engine

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder({
                'success': False,
                'message': 'Invalid request body',
                'details': exc.errors(),
            })
        )

    prefix = config.API_PREFIX
    write_guard = [Depends(require_operator)]

    # ===== Transitions =====

    @app.post(f"{prefix}/start", response_model=AuctionResponse, dependencies=write_guard)
    def start_auction(request: TournamentRequest, engine: AuctionEngine = Depends(get_engine)):
        """Put the oldest never-auctioned player of the tournament on the block."""
        return _respond('start auction', lambda: engine.start(request.tournament_id).to_dict())

    @app.post(f"{prefix}/shuffle", response_model=AuctionResponse, dependencies=write_guard)
    def shuffle_player(request: TournamentRequest, engine: AuctionEngine = Depends(get_engine)):
        """Put a random never-auctioned player on the block."""
        return _respond('shuffle player', lambda: engine.shuffle(request.tournament_id).to_dict())

    @app.post(f"{prefix}/select-player", response_model=AuctionResponse, dependencies=write_guard)
    def select_player(request: SelectPlayerRequest, engine: AuctionEngine = Depends(get_engine)):
        """Put a specific unsold player on the block."""
        return _respond(
            'select player',
            lambda: engine.select_player(request.tournament_id, request.player_id).to_dict()
        )

    @app.post(f"{prefix}/bid", response_model=AuctionResponse, dependencies=write_guard)
    def place_bid(request: BidRequest, engine: AuctionEngine = Depends(get_engine)):
        """
        Place a bid on the player on the block.

        Raises:
            400: Below minimum bid or quota infeasible (details carry the shortfall)
            409: No player of this tournament on the block
        """
        return _respond(
            'place bid',
            lambda: engine.place_bid(request.tournament_id, request.team_id, request.bid_amount).to_dict()
        )

    @app.post(f"{prefix}/sell", response_model=AuctionResponse, dependencies=write_guard)
    def sell_player(request: SellRequest, engine: AuctionEngine = Depends(get_engine)):
        """Sell the player on the block at the current price. Quota problems come back as warnings."""
        return _respond('sell player', lambda: engine.sell(request.tournament_id, request.team_id).to_dict())

    @app.post(f"{prefix}/mark-unsold", response_model=AuctionResponse, dependencies=write_guard)
    def mark_unsold(request: TournamentRequest, engine: AuctionEngine = Depends(get_engine)):
        """Close the block without a sale."""
        return _respond('mark player unsold', lambda: engine.mark_unsold(request.tournament_id).to_dict())

    @app.post(f"{prefix}/cancel-player", response_model=AuctionResponse, dependencies=write_guard)
    def cancel_player(request: TournamentRequest, engine: AuctionEngine = Depends(get_engine)):
        """Undo the current auctioning attempt."""
        return _respond('cancel auction', lambda: engine.cancel(request.tournament_id).to_dict())

    # ===== Corrections =====

    @app.patch(f"{prefix}/players/{{player_id}}/sold-details", response_model=AuctionResponse,
               dependencies=write_guard)
    def update_sold_details(
        player_id: str,
        request: SoldDetailsRequest,
        engine: AuctionEngine = Depends(get_engine)
    ):
        """
        Correct a player's sale. Omitted fields stay as they are; null clears.
        """
        provided = request.model_fields_set
        sold_price = request.sold_price if 'sold_price' in provided else UNSET
        sold_to = request.sold_to if 'sold_to' in provided else UNSET

        def operation():
            player = engine.update_sold_details(player_id, sold_price=sold_price, sold_to=sold_to)
            return {'success': True, 'message': 'Sold details updated', 'data': player}

        return _respond('update sold details', operation)

    @app.patch(f"{prefix}/players/{{player_id}}/tournament", response_model=AuctionResponse,
               dependencies=write_guard)
    def change_player_tournament(
        player_id: str,
        request: ChangeTournamentRequest,
        engine: AuctionEngine = Depends(get_engine)
    ):
        """Move an unsold player to another tournament."""
        def operation():
            player = engine.change_player_tournament(player_id, request.tournament_id, request.category_id)
            return {'success': True, 'message': 'Player tournament updated', 'data': player}

        return _respond('change player tournament', operation)

    # ===== Reads =====

    @app.get(f"{prefix}/current/{{tournament_id}}", response_model=AuctionResponse)
    def get_current_auction(tournament_id: str, engine: AuctionEngine = Depends(get_engine)):
        """Current auction state, with the enriched player on the block."""
        return _respond(
            'get current auction',
            lambda: {'success': True, 'message': '', 'data': engine.get_current_auction(tournament_id)}
        )

    @app.get(f"{prefix}/max-bids/{{tournament_id}}", response_model=AuctionResponse)
    def get_max_bids(tournament_id: str, engine: AuctionEngine = Depends(get_engine)):
        """Largest affordable bid per team (may be negative)."""
        return _respond(
            'get max bids',
            lambda: {
                'success': True,
                'message': '',
                'data': serialize_max_bids(engine.get_max_bids(tournament_id)),
            }
        )

    @app.get(f"{prefix}/unsold/{{tournament_id}}", response_model=AuctionResponse)
    def get_unsold_players(tournament_id: str, engine: AuctionEngine = Depends(get_engine)):
        """Unsold players, newest first."""
        return _respond(
            'get unsold players',
            lambda: {'success': True, 'message': '', 'data': engine.get_unsold_players(tournament_id)}
        )

    @app.get(f"{prefix}/teams/summary/{{tournament_id}}", response_model=AuctionResponse)
    def get_team_summary(tournament_id: str, engine: AuctionEngine = Depends(get_engine)):
        """Spending summary per team, sorted by team name."""
        return _respond(
            'get team summary',
            lambda: {
                'success': True,
                'message': '',
                'data': serialize_team_summary(engine.team_summary(tournament_id)),
            }
        )

    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint.

        Returns:
            Status OK if server is running
        """
        return {
            "status": "ok",
            "service": "Live Auction API",
            "version": "1.0.0"
        }

    # ===== Broadcast Rooms =====

    @app.websocket("/ws/auction/{tournament_id}")
    async def auction_room(websocket: WebSocket, tournament_id: str):
        """
        Join the tournament's auction room.

        The joining client first receives the current state as ``auction:state``,
        then every committed event as ``{"event": name, "data": payload}``.
        """
        if not is_valid_id(tournament_id):
            await websocket.close(code=1008)
            return

        await websocket.accept()

        loop = asyncio.get_running_loop()
        broadcaster = engine.dispatcher.broadcaster
        room = room_key(tournament_id)

        def deliver(event_name: str, payload: dict) -> None:
            # Called from worker threads; hand the send over to the event loop
            asyncio.run_coroutine_threadsafe(
                websocket.send_json({'event': event_name, 'data': jsonable_encoder(payload)}),
                loop
            )

        sub_id = broadcaster.subscribe(room, deliver)
        logger.info(f"Client joined {room}")

        try:
            state = engine.get_current_auction(tournament_id)
            await websocket.send_json({'event': AUCTION_STATE, 'data': jsonable_encoder(state)})

            while True:
                await websocket.receive_text()

        except WebSocketDisconnect:
            logger.info(f"Client left {room}")

        finally:
            broadcaster.unsubscribe(room, sub_id)

    @app.on_event("startup")
    async def startup_event():
        """Log startup message."""
        logger.info("Live Auction API server started")
        if not config.AUCTION_ADMIN_TOKEN:
            logger.warning("AUCTION_ADMIN_TOKEN is not set; write endpoints are open")

    return app
