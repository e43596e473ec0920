"""Creator model: the owner of a public profile and its audience."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from audience.models.base import Base

if TYPE_CHECKING:
    from audience.models.audience_member import AudienceMember


class Creator(Base):
    """Creator profile.

    Profiles are managed by the main web application; this service only
    reads them to validate that an interaction targets an existing,
    public profile.
    """

    __tablename__ = "creators"

    username: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_public: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    audience_members: Mapped[list["AudienceMember"]] = relationship(
        "AudienceMember",
        back_populates="creator",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Creator {self.username}>"
