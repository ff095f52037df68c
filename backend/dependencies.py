"""
Shared FastAPI dependencies
Identity comes from the upstream identity service as trusted request headers.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request

from models.user import User
from services.container import Services


async def get_optional_user(request: Request) -> Optional[User]:
    """Build the acting user from the identity headers; None for anonymous visitors"""
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        return None

    return User(
        user_id=user_id,
        name=request.headers.get("X-User-Name", ""),
        email=request.headers.get("X-User-Email"),
        role=request.headers.get("X-User-Role", "buyer"),
        business_account_id=request.headers.get("X-Business-Account-Id"),
    )


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_services(request: Request) -> Services:
    return request.app.state.services


def paginate(items: list, page: int, page_size: int) -> tuple:
    """Slice `items` for one page; returns (page_items, pagination)"""
    total = len(items)
    skip = (page - 1) * page_size
    pagination = {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": (total + page_size - 1) // page_size,
    }
    return items[skip:skip + page_size], pagination
