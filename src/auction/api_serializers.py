"""
Request and response models for the auction API.

Request bodies use the camelCase field names the auction frontend sends.
Identifier fields are optional here so that a missing id is reported by the
engine as a ValidationError with the auction error envelope, not as a
framework 422.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ========== Transition Requests ==========

class TournamentRequest(BaseModel):
    """Body for start, shuffle, mark-unsold and cancel-player."""
    tournament_id: Optional[str] = Field(None, alias='tournamentId')


class SelectPlayerRequest(BaseModel):
    """Body for POST /select-player."""
    tournament_id: Optional[str] = Field(None, alias='tournamentId')
    player_id: Optional[str] = Field(None, alias='playerId')


class BidRequest(BaseModel):
    """Body for POST /bid."""
    tournament_id: Optional[str] = Field(None, alias='tournamentId')
    team_id: Optional[str] = Field(None, alias='teamId')
    bid_amount: Optional[float] = Field(None, alias='bidAmount', description="New price for the player on the block")


class SellRequest(BaseModel):
    """Body for POST /sell."""
    tournament_id: Optional[str] = Field(None, alias='tournamentId')
    team_id: Optional[str] = Field(None, alias='teamId')


# ========== Correction Requests ==========

class SoldDetailsRequest(BaseModel):
    """
    Body for PATCH /players/{player_id}/sold-details.

    An omitted field is left unchanged; an explicit null clears it.
    """
    sold_price: Optional[float] = Field(None, alias='soldPrice')
    sold_to: Optional[str] = Field(None, alias='soldTo')


class ChangeTournamentRequest(BaseModel):
    """Body for PATCH /players/{player_id}/tournament."""
    tournament_id: Optional[str] = Field(None, alias='tournamentId')
    category_id: Optional[str] = Field(None, alias='categoryId')


# ========== Responses ==========

class AuctionResponse(BaseModel):
    """Envelope returned by every successful auction endpoint."""
    success: bool = Field(True, description="Whether operation succeeded")
    message: str = Field('', description="Human-readable status message")
    data: Optional[Any] = Field(None, description="Operation result")


class MaxBidResponse(BaseModel):
    """Affordability of one team."""
    teamId: str
    maxBid: float = Field(description="Remaining amount minus budget reserved for quotas (may be negative)")


class TeamSummaryRow(BaseModel):
    """One row of the team spending summary."""
    team_id: str
    team_name: str
    players: int
    spent: float
    budget: float
    remaining_amount: float


def serialize_max_bids(rows: List[Dict]) -> List[Dict]:
    """Validate AuctionEngine.get_max_bids() rows as MaxBidResponse dicts."""
    return [MaxBidResponse(**row).model_dump() for row in rows]


def serialize_team_summary(df) -> List[Dict]:
    """
    Convert the team summary DataFrame to response rows.

    Args:
        df: DataFrame from AuctionEngine.team_summary()

    Returns:
        List of TeamSummaryRow dicts
    """
    rows = []
    for _, row in df.iterrows():
        rows.append(TeamSummaryRow(
            team_id=str(row['team_id']),
            team_name=str(row['team_name']),
            players=int(row['players']),
            spent=float(row['spent']),
            budget=float(row['budget']),
            remaining_amount=float(row['remaining_amount']),
        ).model_dump())
    return rows
