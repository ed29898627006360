from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from config.constants import (
    DEFAULT_COD_MAX_AMOUNT,
    DEFAULT_COD_MAX_DISTANCE_KM,
    DEFAULT_COD_SERVICE_FEE,
    DEFAULT_COD_CONFIRMATION_TIMEOUT_MINUTES,
    DEFAULT_COD_MIN_TRUST_SCORE,
    DEFAULT_COD_PENALTY_POINTS,
    DEFAULT_COD_SUCCESS_BONUS_POINTS,
)


class CODSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # A stored 0 reads back as the default, so every numeric must be > 0

    max_amount: float = Field(DEFAULT_COD_MAX_AMOUNT, gt=0)
    max_distance_km: float = Field(DEFAULT_COD_MAX_DISTANCE_KM, gt=0)
    service_fee: float = Field(DEFAULT_COD_SERVICE_FEE, gt=0)
    confirmation_timeout_minutes: int = Field(DEFAULT_COD_CONFIRMATION_TIMEOUT_MINUTES, gt=0)
    min_trust_score: int = Field(DEFAULT_COD_MIN_TRUST_SCORE, gt=0, le=100)
    penalty_points: int = Field(DEFAULT_COD_PENALTY_POINTS, gt=0)
    success_bonus_points: int = Field(DEFAULT_COD_SUCCESS_BONUS_POINTS, gt=0)
    enabled: bool = True


DEFAULT_COD_SETTINGS = CODSettings()


class SettingsRead(BaseModel):
    settings: CODSettings
    used_defaults: bool = False


class CODEligibilityResult(BaseModel):
    eligible: bool
    reason: Optional[str] = None


class BuyerCODStatus(BaseModel):
    enabled: bool = True
    trust_score: int = 100
    fail_count: int = 0
    is_verified: bool = False
