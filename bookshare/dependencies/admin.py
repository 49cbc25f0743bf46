from fastapi import Depends

from bookshare.errors import ForbiddenError
from bookshare.models.user import User
from bookshare.utils.token import get_current_user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Staff-only endpoints (appeal review)."""
    if current_user.role != "admin":
        raise ForbiddenError("Admin access required")
    return current_user
