from fastapi import APIRouter, Depends, Query

from models.auth import ROLE_CONFIGS, ROLE_PRIORITY
from utils.access import (
    can_access_path,
    get_redirect_path_for_roles,
    normalize_roles,
    resolve_login_redirect,
)
from utils.security import get_current_user
from utils.serializers import serialize_user

router = APIRouter(prefix="/auth", tags=["Auth"])


# ======================
# Current User
# ======================

@router.get("/me")
async def me(user=Depends(get_current_user)):
    roles = user.get("roles", [])
    held = normalize_roles(roles)
    return {
        **serialize_user(user),
        "role_labels": [ROLE_CONFIGS[r].label for r in ROLE_PRIORITY if r in held],
        "redirect_path": get_redirect_path_for_roles(roles),
    }


# ======================
# Post-login redirect
# ======================

@router.get("/redirect")
async def login_redirect(
    from_path: str | None = Query(None),
    user=Depends(get_current_user),
):
    redirect_path = resolve_login_redirect(user.get("roles", []), from_path)
    return {
        "redirect": redirect_path is not None,
        "path": redirect_path,
    }


# ======================
# Path access check
# ======================

@router.get("/can-access")
async def can_access(
    path: str = Query(..., min_length=1),
    user=Depends(get_current_user),
):
    allowed = can_access_path(user.get("roles", []), path)
    return {
        "path": path,
        "allowed": allowed,
        "fallback_path": None if allowed else "/unauthorized",
    }
