"""Auction aggregate, status transitions and unit conversion."""

from __future__ import annotations

from decimal import Decimal

import pytest

from bidwatch.auction.fsm import AuctionEvent, transition
from bidwatch.auction.models import (
    MIN_DEFAULT_INCREMENT,
    Auction,
    AuctionStatus,
    Bid,
    default_minimum_increment,
)
from bidwatch.ledger.addresses import SOMPI_PER_KAS, is_valid_address, to_kas, to_sompi

from conftest import NOW, make_auction


class TestAuction:
    def test_current_price_starts_at_start_price(self):
        auction = make_auction(start_price=500)
        assert auction.current_price == 500
        assert auction.minimum_bid == 510

    def test_accept_prepends_and_tracks_price(self):
        auction = make_auction()
        for tx, amount in (("t1", 110), ("t2", 125)):
            auction.accept(Bid(id=tx, auction_id="a1", bidder_address=tx, amount=amount, timestamp=NOW))

        assert [bid.id for bid in auction.bids] == ["t2", "t1"]
        assert auction.bid_count == 2
        assert auction.current_price == 125
        assert auction.highest_bidder == "t2"

    def test_stored_form_survives_reload(self):
        auction = make_auction()
        auction.accept(Bid(id="t1", auction_id="a1", bidder_address=None, amount=110, timestamp=NOW, verified=True))

        data = auction.to_dict()
        assert data["end_time"].endswith("Z")
        assert Auction.from_dict(data) == auction

    def test_default_increment(self):
        assert default_minimum_increment(100 * SOMPI_PER_KAS) == MIN_DEFAULT_INCREMENT
        assert default_minimum_increment(1000 * SOMPI_PER_KAS) == 50 * SOMPI_PER_KAS

    def test_default_increment_floors_to_whole_kas(self):
        assert default_minimum_increment(to_sompi("250.5")) == 12 * SOMPI_PER_KAS
        assert default_minimum_increment(to_sompi("399.99")) == 19 * SOMPI_PER_KAS


class TestTransitions:
    def test_live_to_ended(self):
        assert transition(AuctionStatus.LIVE, AuctionEvent.EXPIRED) is AuctionStatus.ENDED
        assert transition(AuctionStatus.LIVE, AuctionEvent.BID_ACCEPTED) is AuctionStatus.LIVE

    def test_ended_is_terminal(self):
        assert transition(AuctionStatus.ENDED, AuctionEvent.FINALIZED) is AuctionStatus.ENDED
        with pytest.raises(ValueError):
            transition(AuctionStatus.ENDED, AuctionEvent.BID_ACCEPTED)
        with pytest.raises(ValueError):
            transition(AuctionStatus.ENDED, AuctionEvent.EXPIRED)


class TestUnits:
    def test_to_sompi_truncates_dust(self):
        assert to_sompi("1.5") == 150_000_000
        assert to_sompi(2) == 2 * SOMPI_PER_KAS
        assert to_sompi("0.000000019") == 1

    @pytest.mark.parametrize("value", ["abc", "-1", None, "NaN"])
    def test_to_sompi_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            to_sompi(value)

    def test_to_kas(self):
        assert to_kas(150_000_000) == Decimal("1.5")

    def test_address_grammar(self):
        assert is_valid_address("kaspa:qpz2abc")
        assert is_valid_address("KASPATEST:QPZ2ABC")
        assert not is_valid_address("kaspa:")
        assert not is_valid_address("bitcoin:qpz2abc")
        assert not is_valid_address(None)
