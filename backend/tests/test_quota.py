import asyncio

import pytest
from bson import ObjectId

from models.quota import OrderItem, QuotaTier, QuotaTierInput
from utils.quota import (
    calculate_credit_cost,
    calculate_order_credit_cost,
    fetch_quota_tiers,
    get_default_tiers,
    read_quota_tiers,
    replace_quota_tiers,
    use_merchant_quota_credits,
)


@pytest.fixture
def default_tiers():
    return get_default_tiers()


class TestCalculateCreditCost:
    @pytest.mark.parametrize("price,cost", [
        (0, 1),
        (3000, 1),
        (3001, 2),
        (5000, 2),
        (5001, 3),
        (8000, 3),
        (15000, 4),
        (15001, 5),
        (999999, 5),
    ])
    def test_default_ladder(self, default_tiers, price, cost):
        assert calculate_credit_cost(price, default_tiers) == cost

    def test_gap_between_tiers_uses_top_tier(self, default_tiers):
        # 3000.5 is in no band; falls back to the highest tier
        assert calculate_credit_cost(3000.5, default_tiers) == 5

    def test_empty_tiers(self):
        assert calculate_credit_cost(5000, []) == 1

    def test_unsorted_input(self, default_tiers):
        assert calculate_credit_cost(6000, list(reversed(default_tiers))) == 3

    def test_no_unbounded_tier_uses_highest_min_price(self):
        tiers = [
            QuotaTier(min_price=100, max_price=200, credit_cost=7),
            QuotaTier(min_price=0, max_price=99, credit_cost=2),
        ]
        assert calculate_credit_cost(500, tiers) == 7

    def test_zero_cost_fallback_becomes_one(self):
        tiers = [QuotaTier(min_price=0, max_price=10, credit_cost=0)]
        assert calculate_credit_cost(50, tiers) == 1

    def test_cost_is_monotonic_on_default_ladder(self, default_tiers):
        costs = [calculate_credit_cost(p, default_tiers) for p in range(0, 20001, 250)]
        assert costs == sorted(costs)


class TestTierStorage:
    def test_defaults_when_empty(self, db):
        read = asyncio.run(read_quota_tiers(db))
        assert read.used_defaults
        assert [t.credit_cost for t in read.tiers] == [1, 2, 3, 4, 5]

    def test_defaults_on_error(self, db):
        db.quota_tiers.fail_on.add("find")
        read = asyncio.run(read_quota_tiers(db))
        assert read.used_defaults

    def test_active_tiers_sorted(self, db):
        db.quota_tiers.docs.extend([
            {"_id": ObjectId(), "min_price": 1000, "max_price": None, "credit_cost": 9, "is_active": True, "sort_order": 2},
            {"_id": ObjectId(), "min_price": 0, "max_price": 999, "credit_cost": 1, "is_active": True, "sort_order": 1},
            {"_id": ObjectId(), "min_price": 0, "max_price": None, "credit_cost": 99, "is_active": False, "sort_order": 0},
        ])

        read = asyncio.run(read_quota_tiers(db))

        assert not read.used_defaults
        assert [t.credit_cost for t in read.tiers] == [1, 9]
        assert all(isinstance(t.id, str) for t in read.tiers)

    def test_replace_tiers(self, db):
        db.quota_tiers.docs.append({"_id": ObjectId(), "min_price": 0, "credit_cost": 3, "is_active": True})

        tiers = asyncio.run(replace_quota_tiers(db, [
            QuotaTierInput(min_price=0, max_price=10000, credit_cost=1),
            QuotaTierInput(min_price=10001, credit_cost=2),
        ]))

        assert [(t.min_price, t.max_price, t.credit_cost, t.sort_order) for t in tiers] == [
            (0, 10000, 1, 0),
            (10001, None, 2, 1),
        ]
        assert len(db.quota_tiers.docs) == 2

    def test_tier_input_rejects_inverted_bounds(self):
        with pytest.raises(ValueError):
            QuotaTierInput(min_price=500, max_price=100, credit_cost=1)


class TestOrderCreditCost:
    def test_sums_cost_times_quantity(self, db):
        items = [
            OrderItem(price=2500, quantity=2),
            OrderItem(price=7000, quantity=1),
            OrderItem(price=20000, quantity=3),
        ]
        assert asyncio.run(calculate_order_credit_cost(db, items)) == 2 + 3 + 15

    def test_reads_tiers_once(self, db):
        items = [OrderItem(price=100, quantity=1)] * 4
        asyncio.run(calculate_order_credit_cost(db, items))
        assert db.quota_tiers.calls["find"] == 1

    def test_fetch_returns_list(self, db):
        assert len(asyncio.run(fetch_quota_tiers(db))) == 5


class TestUseMerchantQuota:
    def _merchant(self, db, balance):
        merchant_id = ObjectId()
        db.merchants.docs.append({"_id": merchant_id, "quota_balance": balance, "quota_used": 0})
        return merchant_id

    def test_debits_balance(self, db):
        merchant_id = self._merchant(db, 10)
        assert asyncio.run(use_merchant_quota_credits(db, merchant_id, 4)) is True
        assert db.merchants.docs[0]["quota_balance"] == 6
        assert db.merchants.docs[0]["quota_used"] == 4

    def test_insufficient_balance(self, db):
        merchant_id = self._merchant(db, 3)
        assert asyncio.run(use_merchant_quota_credits(db, merchant_id, 4)) is False
        assert db.merchants.docs[0]["quota_balance"] == 3

    def test_exact_balance(self, db):
        merchant_id = self._merchant(db, 4)
        assert asyncio.run(use_merchant_quota_credits(db, merchant_id, 4)) is True
        assert db.merchants.docs[0]["quota_balance"] == 0

    def test_no_deduplication(self, db):
        merchant_id = self._merchant(db, 10)
        asyncio.run(use_merchant_quota_credits(db, merchant_id, 3))
        asyncio.run(use_merchant_quota_credits(db, merchant_id, 3))
        assert db.merchants.docs[0]["quota_balance"] == 4

    def test_storage_error(self, db):
        merchant_id = self._merchant(db, 10)
        db.merchants.fail_on.add("update_one")
        assert asyncio.run(use_merchant_quota_credits(db, merchant_id, 1)) is False

    def test_negative_and_zero(self, db):
        merchant_id = self._merchant(db, 10)
        assert asyncio.run(use_merchant_quota_credits(db, merchant_id, -1)) is False
        assert asyncio.run(use_merchant_quota_credits(db, merchant_id, 0)) is True
        assert db.merchants.docs[0]["quota_balance"] == 10
