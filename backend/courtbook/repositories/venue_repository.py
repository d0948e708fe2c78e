# backend/courtbook/repositories/venue_repository.py
"""
Venue Repository for the court booking platform.

Also reads the optional per-venue admin config. Deployments that have not
created the config table yet are treated as having no config at all.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.venue import Venue, VenueAdminConfig
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_CONFIG_TABLE = VenueAdminConfig.__tablename__


def _is_missing_table_error(exc: SQLAlchemyError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return _CONFIG_TABLE in message and (
        "no such table" in message or "does not exist" in message or "undefined" in message
    )


class VenueRepository(BaseRepository[Venue]):
    def __init__(self, db: Session):
        super().__init__(db, Venue)
        self.logger = logging.getLogger(__name__)

    def get_admin_config(self, venue_id: str) -> Optional[VenueAdminConfig]:
        """
        Admin config row for a venue, or None when absent.

        The query runs in a savepoint so a missing table does not poison the
        surrounding transaction.
        """
        try:
            with self.db.begin_nested():
                return (
                    self.db.query(VenueAdminConfig)
                    .filter(VenueAdminConfig.venue_id == venue_id)
                    .one_or_none()
                )
        except (OperationalError, ProgrammingError) as e:
            if _is_missing_table_error(e):
                self.logger.warning(
                    "Venue admin config table unavailable; using permissive policy for %s",
                    venue_id,
                )
                return None
            self.logger.error(f"Error loading admin config for venue {venue_id}: {str(e)}")
            raise RepositoryException(f"Failed to load venue booking policy: {str(e)}")
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading admin config for venue {venue_id}: {str(e)}")
            raise RepositoryException(f"Failed to load venue booking policy: {str(e)}")

    def get_owned_venue_ids(self, owner_id: str) -> List[str]:
        query = self.db.query(Venue.id).filter(Venue.owner_id == owner_id)
        return [row[0] for row in self._execute_query(query)]

    def is_owner(self, venue_id: str, user_id: str) -> bool:
        return self.exists(id=venue_id, owner_id=user_id)
