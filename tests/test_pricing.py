"""Unit tests for the fare calculation engine."""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.pricing import (
    CancellationFees,
    CorporateDiscount,
    DistanceTier,
    InvalidInputError,
    PricingConfiguration,
    RideFareInput,
    SpecialPricing,
    TimeWindow,
    WaitingCharges,
    cancellation_fee,
    compute_fare,
    is_currently_valid,
    round_money,
    sunday_based_weekday,
    waiting_charge,
)

# Wednesday 2024-03-13; weekday 3 in the Sunday-based convention.
WEDNESDAY_8AM = datetime(2024, 3, 13, 8, 0, tzinfo=timezone.utc)
SATURDAY_NOON = datetime(2024, 3, 16, 12, 0, tzinfo=timezone.utc)


def make_config(**overrides) -> PricingConfiguration:
    values = dict(
        name="test",
        base_fare=5.0,
        per_km_rate=2.0,
        per_minute_rate=0.5,
        minimum_fare=10.0,
        vehicle_type_multipliers={"sedan": 1.0, "suv": 1.2, "luxury": 1.5},
    )
    values.update(overrides)
    return PricingConfiguration(**values)


def make_ride(**overrides) -> RideFareInput:
    values = dict(distance=10.0, duration=20.0, vehicle_category="sedan")
    values.update(overrides)
    return RideFareInput(**values)


class TestBasicFormula:
    def test_basic_scenario(self):
        fare = compute_fare(make_config(), make_ride())
        assert fare.distance_fare == 20.0
        assert fare.duration_fare == 10.0
        assert fare.vehicle_multiplier == 1.0
        assert fare.total_fare == 35.00

    def test_floor_clamp_scenario(self):
        fare = compute_fare(make_config(), make_ride(distance=0, duration=0))
        assert fare.total_fare == 10.00

    def test_maximum_clamp(self):
        fare = compute_fare(make_config(maximum_fare=30.0), make_ride())
        assert fare.total_fare == 30.0

    def test_zero_maximum_is_still_a_cap(self):
        fare = compute_fare(
            make_config(minimum_fare=0.0, maximum_fare=0.0), make_ride()
        )
        assert fare.total_fare == 0.0

    def test_vehicle_multiplier(self):
        fare = compute_fare(make_config(), make_ride(vehicle_category="suv"))
        assert fare.vehicle_multiplier == 1.2
        assert fare.total_fare == 42.0  # 35 x 1.2

    def test_unknown_vehicle_defaults_to_one(self):
        fare = compute_fare(make_config(), make_ride(vehicle_category="tuk-tuk"))
        assert fare.vehicle_multiplier == 1.0
        assert fare.total_fare == 35.0

    def test_breakdown_carries_currency(self):
        fare = compute_fare(make_config(currency="EUR"), make_ride())
        assert fare.currency == "EUR"
        assert fare.base_fare == 5.0

    @pytest.mark.parametrize("distance,duration", [(-1, 0), (0, -0.5)])
    def test_negative_input_rejected(self, distance, duration):
        with pytest.raises(InvalidInputError):
            compute_fare(make_config(), make_ride(distance=distance, duration=duration))

    def test_is_deterministic(self):
        config, ride = make_config(), make_ride(pickup_time=WEDNESDAY_8AM)
        assert compute_fare(config, ride) == compute_fare(config, ride)

    def test_monotonic_in_distance_and_duration(self):
        config = make_config(minimum_fare=0.0)
        fares = [
            compute_fare(config, make_ride(distance=d, duration=d * 2)).total_fare
            for d in (0, 1, 2.5, 7, 40)
        ]
        assert fares == sorted(fares)


class TestRounding:
    def test_round_half_up(self):
        assert round_money(2.675) == 2.68
        assert round_money(1.005) == 1.01
        assert round_money(10.0) == 10.0

    def test_total_is_rounded_to_cents(self):
        config = make_config(per_km_rate=1.0 / 3, minimum_fare=0.0)
        fare = compute_fare(config, make_ride(distance=1, duration=0))
        assert fare.total_fare == 5.33


class TestDistanceTiers:
    TIERS = (
        DistanceTier(min_distance=0, max_distance=5, per_km_rate=3.0),
        DistanceTier(min_distance=5, max_distance=20, per_km_rate=2.0),
        DistanceTier(min_distance=20, max_distance=None, per_km_rate=1.0),
    )

    def test_first_matching_tier_wins(self):
        config = make_config(distance_tiers=self.TIERS)
        # 5 km sits on the first tier's upper bound.
        assert compute_fare(config, make_ride(distance=5)).distance_fare == 15.0

    def test_whole_distance_at_tier_rate(self):
        config = make_config(distance_tiers=self.TIERS)
        assert compute_fare(config, make_ride(distance=12)).distance_fare == 24.0

    def test_open_ended_tier(self):
        config = make_config(distance_tiers=self.TIERS)
        assert compute_fare(config, make_ride(distance=100)).distance_fare == 100.0

    def test_uncovered_distance_charges_nothing(self):
        config = make_config(
            distance_tiers=(DistanceTier(min_distance=0, max_distance=5, per_km_rate=3.0),)
        )
        fare = compute_fare(config, make_ride(distance=8))
        assert fare.distance_fare == 0.0
        assert fare.total_fare == 15.0  # 5 + 0 + 10


class TestTimeWindows:
    def test_peak_hours_on_listed_day(self):
        config = make_config(
            peak_hours=TimeWindow(
                enabled=True, multiplier=1.5, start_time="07:00",
                end_time="09:00", days=(1, 2, 3, 4, 5),
            )
        )
        fare = compute_fare(config, make_ride(pickup_time=WEDNESDAY_8AM))
        assert fare.adjustments.peak_hours is True
        assert fare.total_fare == 52.5

    def test_peak_hours_ignored_on_other_days(self):
        config = make_config(
            peak_hours=TimeWindow(
                enabled=True, multiplier=1.5, start_time="07:00",
                end_time="09:00", days=(1, 2),
            )
        )
        fare = compute_fare(config, make_ride(pickup_time=WEDNESDAY_8AM))
        assert fare.adjustments.peak_hours is False
        assert fare.total_fare == 35.0

    def test_end_hour_is_inclusive(self):
        config = make_config(
            peak_hours=TimeWindow(
                enabled=True, multiplier=2.0, start_time="07:00",
                end_time="08:00", days=(3,),
            )
        )
        ride = make_ride(pickup_time=WEDNESDAY_8AM.replace(minute=59))
        assert compute_fare(config, ride).adjustments.peak_hours is True

    def test_night_window_wraps_midnight(self):
        config = make_config(
            night_hours=TimeWindow(
                enabled=True, multiplier=1.2, start_time="22:00", end_time="05:00"
            )
        )
        late = make_ride(pickup_time=WEDNESDAY_8AM.replace(hour=23))
        early = make_ride(pickup_time=WEDNESDAY_8AM.replace(hour=3))
        midday = make_ride(pickup_time=WEDNESDAY_8AM.replace(hour=12))
        assert compute_fare(config, late).total_fare == 42.0
        assert compute_fare(config, early).adjustments.night_hours is True
        assert compute_fare(config, midday).adjustments.night_hours is False

    def test_weekend(self):
        config = make_config(
            weekend=TimeWindow(enabled=True, multiplier=1.1, days=(0, 6))
        )
        fare = compute_fare(config, make_ride(pickup_time=SATURDAY_NOON))
        assert fare.adjustments.weekend is True
        assert fare.total_fare == 38.5

    def test_no_pickup_time_skips_windows(self):
        config = make_config(
            weekend=TimeWindow(enabled=True, multiplier=2.0, days=tuple(range(7)))
        )
        assert compute_fare(config, make_ride()).adjustments.weekend is False

    def test_pickup_evaluated_in_config_timezone(self):
        config = make_config(
            timezone="Asia/Kolkata",
            peak_hours=TimeWindow(
                enabled=True, multiplier=2.0, start_time="13:00",
                end_time="14:00", days=(3,),
            ),
        )
        # 08:00 UTC is 13:30 in Kolkata.
        fare = compute_fare(config, make_ride(pickup_time=WEDNESDAY_8AM))
        assert fare.adjustments.peak_hours is True

    def test_sunday_based_weekday(self):
        assert sunday_based_weekday(datetime(2024, 3, 17)) == 0
        assert sunday_based_weekday(SATURDAY_NOON) == 6
        assert sunday_based_weekday(WEDNESDAY_8AM) == 3


class TestSpecialPricing:
    def test_emergency_multiplier(self):
        config = make_config(
            special=SpecialPricing(emergency_enabled=True, emergency_multiplier=2.0)
        )
        fare = compute_fare(config, make_ride(is_emergency=True))
        assert fare.adjustments.emergency is True
        assert fare.total_fare == 70.0

    def test_disabled_special_is_ignored(self):
        fare = compute_fare(make_config(), make_ride(is_emergency=True))
        assert fare.adjustments.emergency is False
        assert fare.total_fare == 35.0

    def test_airport_surcharge(self):
        config = make_config(
            special=SpecialPricing(airport_enabled=True, airport_additional_fare=12.5)
        )
        fare = compute_fare(config, make_ride(is_airport_transfer=True))
        assert fare.adjustments.airport_transfer_amount == 12.5
        assert fare.total_fare == 47.5

    def test_recurring_discount(self):
        config = make_config(
            special=SpecialPricing(
                recurring_enabled=True, recurring_discount_percentage=10.0
            )
        )
        fare = compute_fare(config, make_ride(is_recurring=True))
        assert fare.adjustments.recurring_discount_amount == pytest.approx(3.5)
        assert fare.total_fare == 31.5

    def test_emergency_applies_before_airport(self):
        config = make_config(
            special=SpecialPricing(
                emergency_enabled=True,
                emergency_multiplier=2.0,
                airport_enabled=True,
                airport_additional_fare=10.0,
            )
        )
        ride = make_ride(is_emergency=True, is_airport_transfer=True)
        assert compute_fare(config, ride).total_fare == 80.0  # 35 x 2 + 10


class TestCorporateDiscount:
    def test_percentage_discount(self):
        config = make_config(corporate=CorporateDiscount(percentage=10.0))
        fare = compute_fare(config, make_ride(is_corporate=True))
        assert fare.adjustments.corporate_discount_amount == pytest.approx(3.5)
        assert fare.total_fare == 31.5

    def test_discount_is_capped(self):
        config = make_config(
            corporate=CorporateDiscount(percentage=50.0, maximum_discount=5.0)
        )
        fare = compute_fare(config, make_ride(is_corporate=True))
        assert fare.adjustments.corporate_discount_amount == 5.0
        assert fare.total_fare == 30.0

    def test_not_applied_to_personal_rides(self):
        fare = compute_fare(make_config(), make_ride(is_corporate=False))
        assert fare.adjustments.corporate_discount is False

    def test_floor_applies_after_discount(self):
        config = make_config(
            corporate=CorporateDiscount(percentage=90.0, maximum_discount=100.0)
        )
        fare = compute_fare(config, make_ride(is_corporate=True))
        assert fare.total_fare == 10.0


class TestValidity:
    NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_open_ended_config_is_valid(self):
        assert is_currently_valid(make_config(valid_from=self.NOW), self.NOW)

    def test_inactive_config_is_invalid(self):
        assert not is_currently_valid(make_config(is_active=False), self.NOW)

    def test_future_config_is_invalid(self):
        config = make_config(valid_from=self.NOW + timedelta(days=1))
        assert not is_currently_valid(config, self.NOW)

    def test_expired_config_is_invalid(self):
        config = make_config(valid_until=self.NOW - timedelta(seconds=1))
        assert not is_currently_valid(config, self.NOW)

    def test_naive_bounds_are_treated_as_utc(self):
        config = make_config(valid_from=datetime(2024, 5, 1), valid_until=datetime(2024, 7, 1))
        assert is_currently_valid(config, self.NOW)


class TestSupplementaryCharges:
    PICKUP = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "hours_before,expected",
        [(0.5, 0.0), (1.5, 5.0), (3, 10.0), (12, 20.0), (48, 50.0)],
    )
    def test_cancellation_fee_buckets(self, hours_before, expected):
        cancelled_at = self.PICKUP - timedelta(hours=hours_before)
        assert cancellation_fee(make_config(), self.PICKUP, cancelled_at) == expected

    def test_custom_cancellation_fees(self):
        config = make_config(cancellation_fees=CancellationFees(within_1_hour=15.0))
        fee = cancellation_fee(config, self.PICKUP, self.PICKUP - timedelta(minutes=10))
        assert fee == 15.0

    def test_waiting_charge(self):
        config = make_config(waiting_charges=WaitingCharges())
        assert waiting_charge(config, 3) == 0.0
        assert waiting_charge(config, 12) == 7.0
        # Billing stops at the maximum wait.
        assert waiting_charge(config, 90) == 25.0

    def test_negative_wait_rejected(self):
        with pytest.raises(InvalidInputError):
            waiting_charge(make_config(), -1)
