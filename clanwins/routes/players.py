"""
Player registration API routes.

Registered players are scanned by PLAYERS scan jobs.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from clanwins.database import get_db
from clanwins.services.player_registration_service import PlayerRegistrationService


router = APIRouter(prefix="/api/communities/{community_id}/players", tags=["players"])


class RegisterPlayerRequest(BaseModel):
    """Request model for registering a player."""
    channel_id: str
    player_id: str


class PlayerRegistrationResponse(BaseModel):
    community_id: str
    discord_user_id: str
    channel_id: str
    player_id: str


@router.get("", response_model=list[PlayerRegistrationResponse])
async def list_players(community_id: str, db: AsyncSession = Depends(get_db)):
    """List a community's registered players."""
    registrations = await PlayerRegistrationService(db).list_by_community(community_id)
    return [
        PlayerRegistrationResponse(
            community_id=r.community_id,
            discord_user_id=r.discord_user_id,
            channel_id=r.channel_id,
            player_id=r.player_id,
        )
        for r in registrations
    ]


@router.put("/{discord_user_id}", response_model=PlayerRegistrationResponse)
async def register_player(
    community_id: str,
    discord_user_id: str,
    request: RegisterPlayerRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register or update a member's player id."""
    registration = await PlayerRegistrationService(db).register_player(
        community_id=community_id,
        channel_id=request.channel_id,
        discord_user_id=discord_user_id,
        player_id=request.player_id,
    )
    return PlayerRegistrationResponse(
        community_id=registration.community_id,
        discord_user_id=registration.discord_user_id,
        channel_id=registration.channel_id,
        player_id=registration.player_id,
    )


@router.delete("/{discord_user_id}", response_model=dict)
async def unregister_player(community_id: str, discord_user_id: str, db: AsyncSession = Depends(get_db)):
    """Remove a member's registration."""
    removed = await PlayerRegistrationService(db).unregister_player(community_id, discord_user_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Player is not registered"
        )
    return {"removed": True}
