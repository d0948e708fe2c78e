# backend/courtbook/api/dependencies/auth.py
"""
Caller identity.

Authentication itself happens upstream; requests arrive with the
authenticated user's id in the ``X-User-Id`` header.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...models.user import User
from ...repositories import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the calling user.

    Raises:
        HTTPException: 401 if the header is missing or names no user
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "code": "UNAUTHENTICATED"},
        )

    user_repository = RepositoryFactory.create_user_repository(db)
    user = await asyncio.to_thread(user_repository.get_by_id, x_user_id)
    if user is None:
        logger.info("Rejected request for unknown user id %s", x_user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unknown user", "code": "UNAUTHENTICATED"},
        )
    return user
