"""Promo code issuance against a fake Stripe client."""

from types import SimpleNamespace

import pytest
import stripe

from app.utils.rewards import RewardIssuer, is_code_collision, make_code


class FakePromotionCodes:
    def __init__(self, failures=()):
        self.failures = list(failures)
        self.calls = []

    def create(self, params):
        self.calls.append(params)
        if self.failures:
            raise self.failures.pop(0)
        return SimpleNamespace(id=f"promo_{len(self.calls)}", code=params["code"])


class FakeCoupons:
    def __init__(self, valid=True, error=None):
        self.valid = valid
        self.error = error

    def retrieve(self, coupon_id):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(id=coupon_id, valid=self.valid)


class FakeStripe:
    def __init__(self, failures=(), coupon_valid=True, coupon_error=None):
        self.promotion_codes = FakePromotionCodes(failures)
        self.coupons = FakeCoupons(coupon_valid, coupon_error)


def _collision():
    return stripe.InvalidRequestError("Promotion code already exists", "code", code="resource_already_exists")


class TestMakeCode:
    def test_shape(self):
        code = make_code("SURVEY", 6)
        prefix, suffix = code.split("-")
        assert prefix == "SURVEY"
        assert len(suffix) == 6
        assert suffix.isalnum() and suffix.upper() == suffix

    def test_no_prefix(self):
        assert len(make_code("", 8)) == 8


class TestRewardIssuer:
    def setup_method(self):
        self.client = FakeStripe()
        self.issuer = RewardIssuer("sk_test", "coupon_abc", prefix="SURVEY", client=self.client)

    def test_issue_code(self):
        code = self.issuer.issue_code("a@x.com")
        assert code.startswith("SURVEY-")
        assert len(code) == len("SURVEY-") + 6

        (params,) = self.client.promotion_codes.calls
        assert params["coupon"] == "coupon_abc"
        assert params["code"] == code
        assert params["max_redemptions"] == 1
        assert params["metadata"]["email"] == "a@x.com"
        assert params["metadata"]["source"] == "survey_reward"

    def test_collision_retried_once_with_longer_suffix(self):
        self.client.promotion_codes.failures = [_collision()]
        code = self.issuer.issue_code("a@x.com")
        assert len(self.client.promotion_codes.calls) == 2
        assert len(code) == len("SURVEY-") + 8

    def test_second_collision_propagates(self):
        self.client.promotion_codes.failures = [_collision(), _collision()]
        with pytest.raises(stripe.InvalidRequestError):
            self.issuer.issue_code("a@x.com")
        assert len(self.client.promotion_codes.calls) == 2

    def test_other_errors_propagate_without_retry(self):
        self.client.promotion_codes.failures = [stripe.InvalidRequestError("No such coupon", "coupon")]
        with pytest.raises(stripe.InvalidRequestError):
            self.issuer.issue_code("a@x.com")
        assert len(self.client.promotion_codes.calls) == 1

    def test_missing_configuration(self):
        with pytest.raises(RuntimeError):
            RewardIssuer("", "coupon_abc").issue_code("a@x.com")
        with pytest.raises(RuntimeError):
            RewardIssuer("sk_test", "", client=self.client).issue_code("a@x.com")

    def test_coupon_is_valid(self):
        assert self.issuer.coupon_is_valid() is True
        self.client.coupons.valid = False
        assert self.issuer.coupon_is_valid() is False

    def test_coupon_lookup_error(self):
        self.client.coupons.error = stripe.InvalidRequestError("No such coupon", "id")
        assert self.issuer.coupon_is_valid() is False


class TestCollisionDetection:
    def test_by_code(self):
        assert is_code_collision(stripe.InvalidRequestError("exists", None, code="resource_already_exists"))

    def test_by_param(self):
        assert is_code_collision(stripe.InvalidRequestError("bad code", "code"))

    def test_other(self):
        assert not is_code_collision(stripe.InvalidRequestError("No such coupon", "coupon"))
