from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple, Union


class AppRole(str, Enum):
    ADMIN = "admin"
    ADMIN_DESA = "admin_desa"
    VERIFIKATOR = "verifikator"
    MERCHANT = "merchant"
    COURIER = "courier"
    BUYER = "buyer"


# -----------------------------
# PATH PATTERNS
# -----------------------------

@dataclass(frozen=True)
class ExactPath:
    path: str

    def matches(self, path: str) -> bool:
        return path == self.path


@dataclass(frozen=True)
class PrefixPath:
    """Matches the base path itself and anything below it."""

    base: str

    def matches(self, path: str) -> bool:
        return path == self.base or path.startswith(self.base + "/")


PathPattern = Union[ExactPath, PrefixPath]


@dataclass(frozen=True)
class RoleConfig:
    role: AppRole
    label: str
    redirect_path: str
    allowed_paths: Tuple[PathPattern, ...]


# =====================================================
# ROLE REGISTRY
# =====================================================

ROLE_CONFIGS: Dict[AppRole, RoleConfig] = {
    AppRole.ADMIN: RoleConfig(
        role=AppRole.ADMIN,
        label="Admin Pusat",
        redirect_path="/admin",
        allowed_paths=(PrefixPath("/admin"),),
    ),
    AppRole.ADMIN_DESA: RoleConfig(
        role=AppRole.ADMIN_DESA,
        label="Admin Desa",
        redirect_path="/desa",
        allowed_paths=(PrefixPath("/desa"),),
    ),
    AppRole.VERIFIKATOR: RoleConfig(
        role=AppRole.VERIFIKATOR,
        label="Verifikator",
        redirect_path="/verifikator",
        allowed_paths=(PrefixPath("/verifikator"),),
    ),
    AppRole.MERCHANT: RoleConfig(
        role=AppRole.MERCHANT,
        label="Pedagang",
        redirect_path="/merchant",
        allowed_paths=(PrefixPath("/merchant"),),
    ),
    AppRole.COURIER: RoleConfig(
        role=AppRole.COURIER,
        label="Kurir",
        redirect_path="/courier",
        allowed_paths=(PrefixPath("/courier"),),
    ),
    AppRole.BUYER: RoleConfig(
        role=AppRole.BUYER,
        label="Pembeli",
        redirect_path="/",
        allowed_paths=(
            ExactPath("/"),
            ExactPath("/products"),
            PrefixPath("/product"),
            PrefixPath("/tourism"),
            ExactPath("/cart"),
            ExactPath("/checkout"),
            PrefixPath("/orders"),
            ExactPath("/account"),
            ExactPath("/explore"),
            ExactPath("/search"),
        ),
    ),
}

# Highest priority first
ROLE_PRIORITY: List[AppRole] = [
    AppRole.ADMIN,
    AppRole.ADMIN_DESA,
    AppRole.VERIFIKATOR,
    AppRole.MERCHANT,
    AppRole.COURIER,
    AppRole.BUYER,
]
