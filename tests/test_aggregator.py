"""Tests for rate resolution and per-payee aggregation."""

from decimal import Decimal

from staff_pay_engine.calculators.aggregator import PaymentAggregator
from staff_pay_engine.calculators.rate_table import RateTable, StaffDirectory
from staff_pay_engine.calculators.selector import UnpaidWorkSelector
from staff_pay_engine.calculators.types import RateSource, ResolutionErrors

from .conftest import make_item


class TestRateResolution:
    """Test custom > default > none rate priority."""

    def test_custom_rate_takes_precedence(self, rates):
        """S1 Play-by-play resolves to the 150,000 custom rate, not the 100,000 default."""
        task = PaymentAggregator.resolve_task(make_item(1, "S1"), rates, ResolutionErrors())

        assert task.rate == Decimal("150000")
        assert task.rate_source == RateSource.CUSTOM

    def test_default_rate_without_override(self, rates):
        task = PaymentAggregator.resolve_task(make_item(1, "S2"), rates, ResolutionErrors())

        assert task.rate == Decimal("100000")
        assert task.rate_source == RateSource.DEFAULT

    def test_missing_type_resolves_to_zero(self, rates):
        """Unknown task type: rate 0, source none, recorded in both error collections."""
        errors = ResolutionErrors()

        task = PaymentAggregator.resolve_task(make_item(7, "S9", "Commentary"), rates, errors)

        assert task.rate == Decimal("0")
        assert task.rate_source == RateSource.NONE
        assert task.has_valid_rate is False
        assert errors.unmatched_task_types == {"Commentary"}
        assert [t.item_id for t in errors.tasks_with_no_rate] == [7]
        assert errors.tasks_with_no_rate[0].teams == "Ha Noi vs Hai Phong"


class TestPaymentAggregator:
    """Test grouping of work into payment records."""

    def test_staff_keys_sharing_a_legal_name_merge(self, rates, staff):
        """Two staff keys with one legal name produce one record with both tasks."""
        items = [make_item(1, "S1"), make_item(2, "S1-alt")]

        result = PaymentAggregator().aggregate(items, rates, staff)

        assert list(result.payments) == ["Nguyen Van A"]
        record = result.payments["Nguyen Van A"]
        assert record.task_count == 2
        assert record.staff_key == "S1", "Record keeps the first staff key seen"
        assert record.total_amount == Decimal("250000")
        assert [t.rate_source for t in record.tasks] == [RateSource.CUSTOM, RateSource.DEFAULT]

    def test_unmapped_staff_falls_back_to_staff_key(self, rates, staff):
        result = PaymentAggregator().aggregate([make_item(1, "S9", "Highlights")], rates, staff)

        record = result.payments["S9"]
        assert record.has_mapping is False
        assert record.legal_name == "S9"
        assert result.errors.unmatched_staff_keys == {"S9"}

    def test_every_item_lands_in_exactly_one_record(self, rates, staff, work_items):
        """Items with no rate still contribute a task."""
        selected = UnpaidWorkSelector().select(work_items)

        result = PaymentAggregator().aggregate(selected, rates, staff)

        item_ids = [i for record in result.payments.values() for i in record.item_ids]
        assert sorted(item_ids) == [1, 2, 3, 7]
        assert result.task_count == len(selected)

    def test_grand_total_equals_sum_of_resolved_rates(self, rates, staff, work_items):
        selected = UnpaidWorkSelector().select(work_items)

        result = PaymentAggregator().aggregate(selected, rates, staff)

        rates_sum = sum(
            (t.rate for record in result.payments.values() for t in record.tasks),
            Decimal("0"),
        )
        assert result.grand_total == rates_sum
        # 150,000 (S1 custom) + 100,000 (S1-alt default) + 80,000 (S2) + 0 (no rate)
        assert result.grand_total == Decimal("330000")

    def test_payments_keep_first_seen_order(self, rates, staff):
        items = [make_item(1, "S2", "Highlights"), make_item(2, "S1"), make_item(3, "S2", "Highlights")]

        result = PaymentAggregator().aggregate(items, rates, staff)

        assert list(result.payments) == ["Tran Thi B", "Nguyen Van A"]

    def test_empty_input(self, rates, staff):
        result = PaymentAggregator().aggregate([], rates, staff)

        assert result.payments == {}
        assert result.grand_total == Decimal("0")
        assert result.errors.has_errors is False

    def test_empty_configuration_accumulates_errors(self):
        """With no rates and no staff, every item is a gap, never an exception."""
        result = PaymentAggregator().aggregate(
            [make_item(1, "S1"), make_item(2, "S2", "Highlights")],
            RateTable(),
            StaffDirectory(),
        )

        assert result.errors.unmatched_staff_keys == {"S1", "S2"}
        assert result.errors.unmatched_task_types == {"Play-by-play", "Highlights"}
        assert len(result.errors.tasks_with_no_rate) == 2
        assert result.grand_total == Decimal("0")
