# backend/courtbook/models/user.py
"""
User model.

Capabilities are plain flags; a user may rent courts and own venues at
the same time. Authentication lives outside this service.
"""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import RoleName
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=True)

    is_admin = Column(Boolean, nullable=False, default=False)
    is_venue_owner = Column(Boolean, nullable=False, default=False)
    is_renter = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    venues = relationship("Venue", back_populates="owner")

    @property
    def role(self) -> RoleName | None:
        """Most privileged role held, or None for a user with no capabilities."""
        if self.is_admin:
            return RoleName.ADMIN
        if self.is_venue_owner:
            return RoleName.VENUE_OWNER
        if self.is_renter:
            return RoleName.RENTER
        return None

    def __repr__(self) -> str:
        return f"<User {self.id} admin={self.is_admin} owner={self.is_venue_owner}>"
