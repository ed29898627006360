from pydantic import BaseModel, Field, model_validator
from typing import List, Optional


class QuotaTier(BaseModel):
    id: Optional[str] = None
    min_price: float = Field(..., ge=0)
    max_price: Optional[float] = Field(None, ge=0)   # None = no upper bound
    credit_cost: int = Field(..., ge=0)
    description: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0

    def contains(self, price: float) -> bool:
        if price < self.min_price:
            return False
        return self.max_price is None or price <= self.max_price


class QuotaTierInput(BaseModel):
    min_price: float = Field(..., ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    credit_cost: int = Field(..., gt=0)
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.max_price is not None and self.max_price < self.min_price:
            raise ValueError("max_price must be >= min_price")
        return self


class TierRead(BaseModel):
    tiers: List[QuotaTier]
    used_defaults: bool = False


class OrderItem(BaseModel):
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
