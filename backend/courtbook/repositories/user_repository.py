# backend/courtbook/repositories/user_repository.py
import logging

from sqlalchemy.orm import Session

from ..models.user import User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def is_admin(self, user_id: str) -> bool:
        return self.exists(id=user_id, is_admin=True)
