"""
Player registration model.

Links a Discord member of a community to their in-game player id.
PlayerScan jobs scan every registered player of the community.
"""
from sqlalchemy import String, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from clanwins.models.base import Base, TimestampMixin


class PlayerRegistration(Base, TimestampMixin):
    """A community member's registered player id."""
    __tablename__ = "player_registrations"
    __table_args__ = (
        UniqueConstraint("community_id", "discord_user_id", name="uq_player_registrations_community_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    discord_user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self):
        return f"<PlayerRegistration(community_id={self.community_id}, player_id={self.player_id})>"
