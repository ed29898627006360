from typing import Iterable, Optional, Set

from models.auth import AppRole, ROLE_CONFIGS, ROLE_PRIORITY


def normalize_roles(roles: Iterable) -> Set[AppRole]:
    """
    Convert raw role strings to AppRole.
    Roles missing from the registry are dropped, never raised.
    """
    normalized = set()
    for role in roles or ():
        try:
            app_role = AppRole(role)
        except ValueError:
            continue
        if app_role in ROLE_CONFIGS:
            normalized.add(app_role)
    return normalized


def _role_matches(role: AppRole, path: str) -> bool:
    config = ROLE_CONFIGS.get(role)
    if config is None:
        return False
    return any(pattern.matches(path) for pattern in config.allowed_paths)


def can_access_path(roles: Iterable, path: str) -> bool:
    # Buyer routes are open to every authenticated user
    if _role_matches(AppRole.BUYER, path):
        return True

    for role in normalize_roles(roles):
        if _role_matches(role, path):
            return True

    return False


def get_redirect_path_for_roles(roles: Iterable) -> str:
    held = normalize_roles(roles)
    for role in ROLE_PRIORITY:
        if role in held:
            return ROLE_CONFIGS[role].redirect_path
    return "/"


def has_any_role(roles: Iterable, allowed: Iterable) -> bool:
    return bool(normalize_roles(roles) & normalize_roles(allowed))


def _is_app_path(path: Optional[str]) -> bool:
    # in-app pathname only: no scheme, no protocol-relative "//host"
    return bool(path) and path.startswith("/") and not path.startswith("//") and "\\" not in path


def resolve_login_redirect(roles: Iterable, from_path: Optional[str] = None) -> Optional[str]:
    """
    Where a signed-in user should land after hitting a login page.
    None means there is nothing to redirect to (no usable roles yet).
    A from_path outside the app falls back to the role redirect.
    """
    if not normalize_roles(roles):
        return None
    if _is_app_path(from_path):
        return from_path
    return get_redirect_path_for_roles(roles)
