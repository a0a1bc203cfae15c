"""
Critical Path Tests: Acquisition and Disposal Events

Quantity derivation per source kind, lot consumption, and the four link
preconditions. A wrong balance here silently misstates cost basis.

Priority: 🔴 CRITICAL (tax reporting accuracy)
"""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from cost_basis_engine.events import AcquisitionEvent, DisposalEvent, acquisition_quantity, disposal_quantity
from cost_basis_engine.exceptions import ExhaustedEntityError, InvariantViolationError, LinkPrecondition
from cost_basis_engine.models import EventRole, EventSource, SourceRef

from conftest import at


def chain_record(event_id=1, value="1500000000000000000", adjustment="0", decimals=18,
                 symbol="ETH", hours=0, acquisition_links=(), disposal_links=()):
    return SimpleNamespace(
        id=event_id, value=value, value_adjustment=adjustment, token_decimal=decimals,
        token_symbol=symbol, time_stamp=at(hours),
        acquisition_links=list(acquisition_links), disposal_links=list(disposal_links),
    )


def trade_record(event_id=1, vol="10", base_fee="0", quote_fee="0", withdrawal_fee="0",
                 base="BTC", hours=0, acquisition_links=(), disposal_links=()):
    return SimpleNamespace(
        id=event_id, vol=Decimal(vol), base_fee=Decimal(base_fee), quote_fee=Decimal(quote_fee),
        withdrawal_fee=Decimal(withdrawal_fee), base_currency=base, time=at(hours),
        acquisition_links=list(acquisition_links), disposal_links=list(disposal_links),
    )


def link_row(quantity):
    return SimpleNamespace(quantity=Decimal(quantity))


class TestQuantityDerivation:
    """Each source kind derives its quantity differently per role"""

    @pytest.mark.critical
    def test_chain_value_scaled_by_token_decimals(self):
        assert acquisition_quantity(EventSource.CHAIN, chain_record()) == Decimal("1.5")

    @pytest.mark.critical
    def test_chain_value_adjustment_is_applied_before_scaling(self):
        record = chain_record(adjustment="-500000000000000000")
        assert disposal_quantity(EventSource.CHAIN, record) == Decimal("1")

    @pytest.mark.critical
    def test_exchange_acquisition_subtracts_quote_and_withdrawal_fees(self):
        record = trade_record(vol="10", quote_fee="0.1", withdrawal_fee="0.2")
        assert acquisition_quantity(EventSource.EXCHANGE, record) == Decimal("9.7")

    @pytest.mark.critical
    def test_exchange_disposal_adds_base_fee(self):
        record = trade_record(vol="10", base_fee="0.05")
        assert disposal_quantity(EventSource.EXCHANGE, record) == Decimal("10.05")

    @pytest.mark.critical
    def test_float_quantities_are_rejected(self):
        record = trade_record()
        record.vol = 10.0
        with pytest.raises(TypeError):
            acquisition_quantity(EventSource.EXCHANGE, record)

    def test_six_decimal_token(self):
        record = chain_record(value="2500000", decimals=6, symbol="USDC")
        event = AcquisitionEvent.from_chain_transfer(record)
        assert event.quantity == Decimal("2.5")
        assert event.currency == "USDC"


class TestAcquisitionEvent:
    """Lot consumption"""

    @pytest.mark.critical
    def test_opening_balance_subtracts_prior_links(self):
        record = trade_record(vol="10", acquisition_links=[link_row("4"), link_row("1.5")])
        event = AcquisitionEvent.from_exchange_trade(record)

        assert event.quantity == Decimal("10")
        assert event.available_quantity == Decimal("4.5")
        assert event.source_ref == SourceRef.exchange(1)

    def test_over_linked_lot_opens_exhausted(self):
        record = trade_record(vol="10", acquisition_links=[link_row("12")])
        event = AcquisitionEvent.from_exchange_trade(record)

        assert event.available_quantity == Decimal("0")
        assert event.is_exhausted

    @pytest.mark.critical
    def test_spend_decrements_available(self, make_acquisition):
        lot = make_acquisition(1, "ETH", 0, "10")
        lot.spend(Decimal("3.25"))
        assert lot.available_quantity == Decimal("6.75")
        assert not lot.is_exhausted

        lot.spend(Decimal("6.75"))
        assert lot.is_exhausted

    @pytest.mark.critical
    def test_overspend_raises_without_mutation(self, make_acquisition):
        lot = make_acquisition(7, "ETH", 0, "1")
        with pytest.raises(ExhaustedEntityError) as exc_info:
            lot.spend(Decimal("1.000000000000000001"))

        assert lot.available_quantity == Decimal("1")
        assert exc_info.value.acquisition_ref == SourceRef.chain(7)
        assert exc_info.value.requested == Decimal("1.000000000000000001")

    @pytest.mark.critical
    def test_spend_from_exhausted_lot_raises(self, make_acquisition):
        lot = make_acquisition(1, "ETH", 0, "5", consumed="5")
        with pytest.raises(ExhaustedEntityError):
            lot.spend(Decimal("0.1"))

    def test_non_positive_spend_is_rejected(self, make_acquisition):
        lot = make_acquisition(1, "ETH", 0, "5")
        with pytest.raises(ValueError):
            lot.spend(Decimal("0"))
        with pytest.raises(ValueError):
            lot.spend(Decimal("-1"))

    def test_naive_timestamp_is_read_as_utc(self):
        event = AcquisitionEvent(SourceRef.chain(1), "ETH", datetime(2024, 1, 1), Decimal("1"))
        assert event.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestDisposalLinking:
    """link_with preconditions and outcomes"""

    @pytest.mark.critical
    def test_partial_link_consumes_whole_lot(self, make_acquisition, make_disposal):
        lot = make_acquisition(1, "ETH", 1, "10")
        disposal = make_disposal(2, "ETH", 3, "15")

        outcome = disposal.link_with(lot)

        assert outcome.new_link.quantity == Decimal("10")
        assert outcome.acquisition_exhausted
        assert not outcome.disposal_exhausted
        assert disposal.unaccounted_quantity == Decimal("5")
        assert lot.available_quantity == Decimal("0")

    @pytest.mark.critical
    def test_link_leaves_remainder_on_lot(self, make_acquisition, make_disposal):
        lot = make_acquisition(1, "ETH", 1, "10")
        disposal = make_disposal(2, "ETH", 3, "4")

        outcome = disposal.link_with(lot)

        assert outcome.new_link.quantity == Decimal("4")
        assert outcome.disposal_exhausted
        assert not outcome.acquisition_exhausted
        assert lot.available_quantity == Decimal("6")

    @pytest.mark.critical
    def test_link_columns_follow_each_event_source(self, make_acquisition, make_disposal):
        lot = make_acquisition(11, "BTC", 1, "1", source=EventSource.CHAIN)
        disposal = make_disposal(22, "BTC", 2, "1", source=EventSource.EXCHANGE)

        link = disposal.link_with(lot).new_link

        assert link.ref_columns() == {
            'acquisition_chain_event_id': 11,
            'acquisition_exchange_event_id': None,
            'disposal_chain_event_id': None,
            'disposal_exchange_event_id': 22,
        }
        assert SourceRef.exchange(22).column_for(EventRole.DISPOSAL) == 'disposal_exchange_event_id'

    @pytest.mark.critical
    def test_currency_guard(self, make_acquisition, make_disposal):
        lot = make_acquisition(1, "ETH", 1, "10")
        disposal = make_disposal(2, "BTC", 3, "5")

        with pytest.raises(InvariantViolationError) as exc_info:
            disposal.link_with(lot)

        assert exc_info.value.precondition == LinkPrecondition.SAME_CURRENCY
        assert lot.available_quantity == Decimal("10")
        assert disposal.unaccounted_quantity == Decimal("5")

    @pytest.mark.critical
    def test_chronology_guard_is_strict(self, make_acquisition, make_disposal):
        lot = make_acquisition(1, "ETH", 3, "10")
        disposal = make_disposal(2, "ETH", 3, "5")

        with pytest.raises(InvariantViolationError) as exc_info:
            disposal.link_with(lot)

        assert exc_info.value.precondition == LinkPrecondition.ACQUIRED_BEFORE_DISPOSAL
        assert lot.available_quantity == Decimal("10")
        assert disposal.unaccounted_quantity == Decimal("5")

    @pytest.mark.critical
    def test_exhausted_disposal_is_checked_first(self, make_acquisition, make_disposal):
        # Also violates currency and chronology; exhaustion must win
        lot = make_acquisition(1, "BTC", 5, "10")
        disposal = make_disposal(2, "ETH", 3, "5", linked="5")

        with pytest.raises(ExhaustedEntityError) as exc_info:
            disposal.link_with(lot)

        assert exc_info.value.precondition == LinkPrecondition.DISPOSAL_NOT_EXHAUSTED
        assert exc_info.value.disposal_ref == SourceRef.chain(2)

    @pytest.mark.critical
    def test_exhausted_acquisition_is_rejected(self, make_acquisition, make_disposal):
        lot = make_acquisition(1, "ETH", 1, "10", consumed="10")
        disposal = make_disposal(2, "ETH", 3, "5")

        with pytest.raises(ExhaustedEntityError) as exc_info:
            disposal.link_with(lot)

        assert exc_info.value.precondition == LinkPrecondition.ACQUISITION_NOT_EXHAUSTED
        assert disposal.unaccounted_quantity == Decimal("5")

    def test_disposal_from_chain_record_reads_disposal_links(self):
        record = chain_record(value="3000000000000000000", disposal_links=[link_row("1")],
                              acquisition_links=[link_row("2")])
        event = DisposalEvent.from_chain_transfer(record)
        assert event.quantity == Decimal("3")
        assert event.unaccounted_quantity == Decimal("2")
