from datetime import timedelta

import pytest

from optionsentinel.config import ScoringConfig
from optionsentinel.core.scoring import (
    BEARISH,
    BEARISH_SELL,
    BULLISH,
    BULLISH_SELL,
    format_premium,
    is_aggressive,
    premium_floor,
    premium_of,
    premium_points,
    ratio_points,
    score_contract,
    sentiment_for,
)

from conftest import TODAY, make_contract, make_quote


@pytest.fixture
def config():
    return ScoringConfig()


class TestPremium:

    def test_premium_uses_last_price(self):
        assert premium_of(make_contract(volume=600, last=5.0)) == 300_000

    def test_premium_falls_back_to_ask_without_trade(self):
        assert premium_of(make_contract(volume=100, last=None, ask=3.0)) == 30_000

    @pytest.mark.parametrize(
        "premium,points",
        [
            (1_000_000, 40),
            (999_999, 30),
            (500_000, 30),
            (499_999, 20),
            (100_000, 20),
            (99_999, 10),
            (50_000, 10),
            (49_999, 0),
        ],
    )
    def test_premium_tiers(self, premium, points):
        assert premium_points(premium) == points


class TestRatio:

    @pytest.mark.parametrize(
        "ratio,points",
        [(5, 30), (4.99, 20), (2, 20), (1.99, 10), (1, 10), (0.99, 0)],
    )
    def test_ratio_tiers(self, ratio, points):
        assert ratio_points(ratio) == points

    def test_zero_open_interest_counts_as_one(self, config):
        contract = make_contract(volume=600, open_interest=0)
        result = score_contract(contract, make_quote("PLTR"), config, TODAY)
        assert result.details.ratio == "600.00"


class TestNoiseFloor:

    def test_class_floors(self, config):
        assert premium_floor("SPY", config) == 1_000_000
        assert premium_floor("aapl", config) == 100_000
        assert premium_floor("PLTR", config) == 25_000

    def test_absolute_floor_applies_to_every_class(self):
        config = ScoringConfig(megacap_min_premium=10_000, min_premium=25_000)
        assert premium_floor("AAPL", config) == 25_000

    @pytest.mark.parametrize(
        "ticker,volume",
        [("SPY", 1_999), ("AAPL", 199), ("PLTR", 49)],
    )
    def test_below_floor_is_noise(self, config, ticker, volume):
        # $5 contract: floor / 500 contracts is the threshold
        contract = make_contract(volume=volume, last=5.0)
        result = score_contract(contract, make_quote(ticker), config, TODAY)
        assert result.noise
        assert result.score == 0

    @pytest.mark.parametrize(
        "ticker,volume",
        [("SPY", 2_000), ("AAPL", 200), ("PLTR", 50)],
    )
    def test_at_floor_is_scored(self, config, ticker, volume):
        contract = make_contract(volume=volume, last=5.0)
        result = score_contract(contract, make_quote(ticker), config, TODAY)
        assert not result.noise


class TestAggressionAndSentiment:

    def test_last_at_mid_is_aggressive(self):
        assert is_aggressive(make_contract(last=5.0, bid=4.8, ask=5.2))

    def test_last_below_mid_is_passive(self):
        assert not is_aggressive(make_contract(last=4.9, bid=4.8, ask=5.2))

    def test_missing_quote_side_is_passive(self):
        assert not is_aggressive(make_contract(bid=None))

    @pytest.mark.parametrize(
        "option_type,aggressive,expected",
        [
            ("call", True, BULLISH),
            ("call", False, BEARISH_SELL),
            ("put", True, BEARISH),
            ("put", False, BULLISH_SELL),
        ],
    )
    def test_sentiment_table(self, option_type, aggressive, expected):
        assert sentiment_for(option_type, aggressive) == expected


class TestScore:

    def test_reference_contract(self, config):
        # $300K premium (20) + ratio 6 (30) + at ask (20) + 5 days (10)
        result = score_contract(make_contract(), make_quote("PLTR", 100.0), config, TODAY)

        assert result.score == 80
        assert result.premium == 300_000
        assert result.sentiment == BULLISH
        assert result.details.premium == "$300.0K"
        assert result.details.ratio == "6.00"
        assert result.details.days_to_expiry == 5

    def test_urgency_boundary(self, config):
        quote = make_quote("PLTR")
        at_week = score_contract(make_contract(days_out=7), quote, config, TODAY)
        past_week = score_contract(make_contract(days_out=8), quote, config, TODAY)
        assert at_week.score - past_week.score == 10

    def test_everything_maxed_is_clamped_to_100(self, config):
        contract = make_contract(volume=10_000, open_interest=10, last=5.0, days_out=0)
        result = score_contract(contract, make_quote("PLTR"), config, TODAY)
        assert result.score == 100

    def test_passive_put_far_out(self, config):
        contract = make_contract(
            option_type="put", volume=100, open_interest=1_000, last=4.8, days_out=30
        )
        result = score_contract(contract, make_quote("PLTR"), config, TODAY)
        # $48K premium, ratio 0.1, at bid, 30 days
        assert result.score == 0
        assert not result.noise
        assert result.sentiment == BULLISH_SELL

    def test_score_always_in_range(self, config):
        quote = make_quote("PLTR")
        for volume in (50, 500, 5_000, 50_000):
            for oi in (0, 10, 10_000):
                for days in (-1, 0, 30):
                    contract = make_contract(volume=volume, open_interest=oi, days_out=days)
                    assert 0 <= score_contract(contract, quote, config, TODAY).score <= 100


def test_format_premium():
    assert format_premium(1_250_000) == "$1.25M"
    assert format_premium(300_000) == "$300.0K"
    assert format_premium(950) == "$950"
