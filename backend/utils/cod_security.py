import logging
import math
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from config.constants import (
    COD_SETTINGS_KEY,
    DEFAULT_COD_CONFIRMATION_TIMEOUT_MINUTES,
    DEFAULT_FLASH_SALE_DISCOUNT,
    TRUST_SCORE_MAX,
    TRUST_SCORE_MIN,
    TRUST_SCORE_UPDATE_ATTEMPTS,
)
from config.env import COD_SETTINGS_CACHE_TTL_SECONDS
from models.cod import (
    BuyerCODStatus,
    CODEligibilityResult,
    CODSettings,
    DEFAULT_COD_SETTINGS,
    SettingsRead,
)

# ============================================================
# COD SECURITY: DesaMart
# ============================================================
# Controls:
# - COD settings (cached, admin configurable)
# - Quick + authoritative eligibility
# - Buyer trust score after COD outcomes
# - Confirmation deadlines and flash-sale fallback
# ============================================================

EARTH_RADIUS_KM = 6371
logger = logging.getLogger(__name__)


# ============================================================
# SETTINGS
# ============================================================

def _settings_from_document(value: Dict[str, Any]) -> CODSettings:
    """
    Build settings from the stored document one field at a time.
    A bad field falls back to its default without discarding the rest.
    """
    defaults = DEFAULT_COD_SETTINGS.model_dump()
    data = {}

    for name, default in defaults.items():
        raw = value.get(name)
        if name == "enabled":
            data[name] = raw if isinstance(raw, bool) else default
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool) and raw > 0:
            data[name] = raw
        else:
            data[name] = default

    try:
        return CODSettings(**data)
    except ValidationError as e:
        for err in e.errors():
            name = err["loc"][0]
            logger.warning("COD_SETTINGS_FIELD_DEFAULTED field=%s", name)
            data[name] = defaults[name]
        return CODSettings(**data)


class CODSettingsCache:
    """
    Process-wide COD settings cache with a time-to-live.

    The cached object is only ever replaced as a whole, so concurrent
    readers inside one event loop always see a complete value.
    """

    def __init__(
        self,
        ttl_seconds: float = COD_SETTINGS_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._settings: Optional[CODSettings] = None
        self._cached_at: float = 0.0

    def _is_fresh(self) -> bool:
        return (
            self._settings is not None
            and (self._clock() - self._cached_at) < self.ttl_seconds
        )

    async def load(self, db) -> SettingsRead:
        if self._is_fresh():
            return SettingsRead(settings=self._settings)

        try:
            doc = await db.app_settings.find_one(
                {"key": COD_SETTINGS_KEY},
                {"value": 1},
            )
        except Exception:
            logger.exception("COD_SETTINGS_READ_ERROR")
            return SettingsRead(settings=DEFAULT_COD_SETTINGS, used_defaults=True)

        if not doc or not isinstance(doc.get("value"), dict):
            return SettingsRead(settings=DEFAULT_COD_SETTINGS, used_defaults=True)

        self._settings = _settings_from_document(doc["value"])
        self._cached_at = self._clock()
        return SettingsRead(settings=self._settings)

    async def get(self, db) -> CODSettings:
        return (await self.load(db)).settings

    def invalidate(self) -> None:
        self._settings = None
        self._cached_at = 0.0


cod_settings_cache = CODSettingsCache()


def get_cod_settings_cache() -> CODSettingsCache:
    return cod_settings_cache


async def save_cod_settings(db, cache: CODSettingsCache, settings: CODSettings):
    await db.app_settings.update_one(
        {"key": COD_SETTINGS_KEY},
        {
            "$set": {
                "value": settings.model_dump(),
                "updated_at": datetime.utcnow(),
            }
        },
        upsert=True,
    )
    cache.invalidate()


# ============================================================
# FORMATTING
# ============================================================

def format_rupiah(amount: float) -> str:
    """id-ID number formatting: 75000 -> '75.000', 1234.5 -> '1.234,5'."""
    if float(amount).is_integer():
        return f"{int(amount):,}".replace(",", ".")

    text = f"{amount:,.3f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def _format_km(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else format_rupiah(value)


# ============================================================
# DISTANCE
# ============================================================

def _to_rad(deg: float) -> float:
    return deg * (math.pi / 180)


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km (haversine)."""
    d_lat = _to_rad(lat2 - lat1)
    d_lng = _to_rad(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(_to_rad(lat1)) * math.cos(_to_rad(lat2))
        * math.sin(d_lng / 2) * math.sin(d_lng / 2)
    )

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


# ============================================================
# ELIGIBILITY
# ============================================================

def _ineligible(reason: str) -> CODEligibilityResult:
    return CODEligibilityResult(eligible=False, reason=reason)


def quick_cod_check(
    total_amount: float,
    distance_km: Optional[float] = None,
    settings: Optional[CODSettings] = None,
) -> CODEligibilityResult:
    """
    Local pre-check on amount and distance only.
    check_cod_eligibility must still confirm a positive result.
    """
    config = settings or DEFAULT_COD_SETTINGS

    if total_amount > config.max_amount:
        return _ineligible(
            f"Nominal terlalu besar untuk COD. Maks: Rp {format_rupiah(config.max_amount)}"
        )

    if distance_km is not None and distance_km > config.max_distance_km:
        return _ineligible(
            f"Jarak terlalu jauh untuk COD. Maks: {_format_km(config.max_distance_km)} KM"
        )

    return CODEligibilityResult(eligible=True, reason=None)


def _stored_trust_score(profile: dict) -> int:
    score = profile.get("trust_score")
    return TRUST_SCORE_MAX if score is None else score


async def check_cod_eligibility(
    db,
    cache: CODSettingsCache,
    *,
    buyer_id,
    merchant_id,
    total_amount: float,
    distance_km: Optional[float] = None,
) -> CODEligibilityResult:
    try:
        settings = await cache.get(db)

        if not settings.enabled:
            return _ineligible("COD sedang tidak tersedia")

        buyer = await db.users.find_one(
            {"_id": buyer_id},
            {"cod_enabled": 1, "trust_score": 1},
        )
        if not buyer:
            return _ineligible("Data pembeli tidak ditemukan")

        if buyer.get("cod_enabled") is False:
            return _ineligible("COD dinonaktifkan untuk akun Anda")

        if _stored_trust_score(buyer) < settings.min_trust_score:
            return _ineligible("Skor kepercayaan Anda belum memenuhi syarat COD")

        merchant = await db.merchants.find_one(
            {"_id": merchant_id},
            {"cod_enabled": 1},
        )
        if not merchant:
            return _ineligible("Data pedagang tidak ditemukan")

        if merchant.get("cod_enabled") is False:
            return _ineligible("Pedagang ini tidak menerima COD")

        return quick_cod_check(total_amount, distance_km, settings)

    except PyMongoError:
        logger.exception("COD_ELIGIBILITY_ERROR buyer=%s merchant=%s", buyer_id, merchant_id)
        return _ineligible("Gagal memeriksa kelayakan COD")
    except Exception:
        logger.exception("COD_ELIGIBILITY_ERROR buyer=%s merchant=%s", buyer_id, merchant_id)
        return _ineligible("Terjadi kesalahan sistem")


# ============================================================
# BUYER TRUST
# ============================================================

def _clamp_score(score: int) -> int:
    return max(TRUST_SCORE_MIN, min(TRUST_SCORE_MAX, score))


def compute_trust_update(
    current_score: Optional[int],
    fail_count: Optional[int],
    success: bool,
    settings: CODSettings,
) -> Dict[str, Any]:
    """
    Pure trust transition for one COD outcome.
    Never re-enables COD; that is an admin action.
    """
    score = TRUST_SCORE_MAX if current_score is None else current_score

    if success:
        return {"trust_score": _clamp_score(score + settings.success_bonus_points)}

    new_score = _clamp_score(score - settings.penalty_points)
    updates: Dict[str, Any] = {
        "trust_score": new_score,
        "cod_fail_count": (fail_count or 0) + 1,
    }

    if new_score < settings.min_trust_score:
        updates["cod_enabled"] = False

    return updates


async def update_buyer_trust_score(
    db,
    cache: CODSettingsCache,
    buyer_id,
    success: bool,
) -> Optional[Dict[str, Any]]:
    """
    Apply a COD outcome to the buyer's trust score.

    The write only lands if trust_score and cod_fail_count still hold the
    values that were read; otherwise the profile is re-read and the
    transition recomputed. Returns the applied fields, or None when nothing
    was written. Errors are logged, never raised.
    """
    try:
        settings = await cache.get(db)

        for _ in range(TRUST_SCORE_UPDATE_ATTEMPTS):
            profile = await db.users.find_one(
                {"_id": buyer_id},
                {"trust_score": 1, "cod_fail_count": 1},
            )
            if not profile:
                return None

            updates = compute_trust_update(
                profile.get("trust_score"),
                profile.get("cod_fail_count"),
                success,
                settings,
            )

            result = await db.users.update_one(
                {
                    "_id": buyer_id,
                    "trust_score": profile.get("trust_score"),
                    "cod_fail_count": profile.get("cod_fail_count"),
                },
                {
                    "$set": {
                        **updates,
                        "trust_updated_at": datetime.utcnow(),
                    }
                },
            )

            if result.matched_count == 1:
                return updates

            logger.warning("TRUST_SCORE_CONFLICT buyer=%s", buyer_id)

        logger.error("TRUST_SCORE_UPDATE_ABANDONED buyer=%s", buyer_id)
        return None

    except Exception:
        logger.exception("TRUST_SCORE_UPDATE_ERROR buyer=%s", buyer_id)
        return None


async def get_buyer_cod_status(db, buyer_id) -> BuyerCODStatus:
    try:
        profile = await db.users.find_one(
            {"_id": buyer_id},
            {"cod_enabled": 1, "trust_score": 1, "cod_fail_count": 1, "is_verified_buyer": 1},
        )
    except Exception:
        logger.exception("COD_STATUS_READ_ERROR buyer=%s", buyer_id)
        return BuyerCODStatus()

    if not profile:
        return BuyerCODStatus()

    return BuyerCODStatus(
        enabled=profile.get("cod_enabled", True) is not False,
        trust_score=_stored_trust_score(profile),
        fail_count=profile.get("cod_fail_count") or 0,
        is_verified=bool(profile.get("is_verified_buyer", False)),
    )


# ============================================================
# CONFIRMATION WINDOW
# ============================================================

def get_confirmation_deadline(
    created_at: datetime,
    timeout_minutes: int = DEFAULT_COD_CONFIRMATION_TIMEOUT_MINUTES,
) -> datetime:
    return created_at + timedelta(minutes=timeout_minutes)


def is_confirmation_expired(deadline: datetime, now: Optional[datetime] = None) -> bool:
    return (now or datetime.utcnow()) > deadline


def generate_cod_confirmation_message(order_id: str, buyer_name: str, total_amount: float) -> str:
    return (
        f"Halo, saya {buyer_name} konfirmasi pesanan COD "
        f"#{str(order_id)[:8].upper()} sebesar Rp {format_rupiah(total_amount)}. "
        f"Mohon diproses."
    )


def get_cod_whatsapp_link(
    merchant_phone: str,
    order_id: str,
    buyer_name: str,
    total_amount: float,
) -> str:
    message = generate_cod_confirmation_message(order_id, buyer_name, total_amount)
    # same escaping as encodeURIComponent
    encoded = quote(message, safe="-_.!~*'()")

    phone = merchant_phone
    if phone.startswith("0"):
        phone = "62" + phone[1:]

    return f"https://wa.me/{phone}?text={encoded}"


# ============================================================
# FLASH SALE (REJECTED COD FALLBACK)
# ============================================================

async def create_flash_sale(
    db,
    order_id,
    discount_percent: int = DEFAULT_FLASH_SALE_DISCOUNT,
) -> bool:
    if not 0 < discount_percent <= 100:
        logger.warning("FLASH_SALE_INVALID_DISCOUNT order=%s discount=%s", order_id, discount_percent)
        return False

    try:
        await db.orders.update_one(
            {"_id": order_id},
            {
                "$set": {
                    "is_flash_sale": True,
                    "flash_sale_discount": discount_percent,
                    "updated_at": datetime.utcnow(),
                }
            },
        )
    except Exception:
        logger.exception("FLASH_SALE_ERROR order=%s", order_id)
        return False

    return True
