"""
Player registration service.

A community's registered players are the input of a PlayerScan job.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from clanwins.models.player_registration import PlayerRegistration


class PlayerRegistrationService:
    """Service for managing a community's registered players."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def register_player(
        self,
        community_id: str,
        channel_id: str,
        discord_user_id: str,
        player_id: str
    ) -> PlayerRegistration:
        """
        Register (or re-register) a member's player id.
        
        Args:
            community_id: Community (guild) ID
            channel_id: Channel the registration was made from
            discord_user_id: Discord member ID
            player_id: In-game public player ID
            
        Returns:
            The stored registration
        """
        registration = await self.get_registration(community_id, discord_user_id)
        if registration is None:
            registration = PlayerRegistration(
                community_id=community_id,
                discord_user_id=discord_user_id,
                channel_id=channel_id,
                player_id=player_id
            )
            self.db.add(registration)
        else:
            registration.channel_id = channel_id
            registration.player_id = player_id
        
        await self.db.commit()
        await self.db.refresh(registration)
        return registration
    
    async def unregister_player(self, community_id: str, discord_user_id: str) -> bool:
        """Remove a member's registration. Returns True if one existed."""
        stmt = (
            delete(PlayerRegistration)
            .where(
                PlayerRegistration.community_id == community_id,
                PlayerRegistration.discord_user_id == discord_user_id
            )
            .returning(PlayerRegistration.id)
        )
        result = await self.db.execute(stmt)
        removed = result.scalar_one_or_none() is not None
        await self.db.commit()
        return removed
    
    async def get_registration(self, community_id: str, discord_user_id: str) -> PlayerRegistration | None:
        """Get one member's registration."""
        stmt = select(PlayerRegistration).where(
            PlayerRegistration.community_id == community_id,
            PlayerRegistration.discord_user_id == discord_user_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
    
    async def list_by_community(self, community_id: str) -> list[PlayerRegistration]:
        """Get all registrations for a community."""
        stmt = (
            select(PlayerRegistration)
            .where(PlayerRegistration.community_id == community_id)
            .order_by(PlayerRegistration.created_at, PlayerRegistration.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
