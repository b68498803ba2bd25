import uuid

from fastapi import Depends, HTTPException, status
from fastapi_users import FastAPIUsers

from users.auth import auth_backend
from users.manager import get_user_manager
from users.models import AccountKind, User

fastapi_users = FastAPIUsers[User, uuid.UUID](
    get_user_manager,
    [auth_backend],
)

current_active_user = fastapi_users.current_user(active=True)


async def get_current_mentor(user: User = Depends(current_active_user)) -> User:
    if user.role != AccountKind.MENTOR.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only users with role 'mentor' can access this resource",
        )
    return user


async def get_current_learner(user: User = Depends(current_active_user)) -> User:
    if user.role != AccountKind.LEARNER.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only users with role 'learner' can book sessions",
        )
    return user


async def get_current_admin(user: User = Depends(current_active_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user
