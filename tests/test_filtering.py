"""Tests for the FilterEngine."""

from datetime import date, datetime
from decimal import Decimal

from expense_tracker.filtering import FilterEngine, apply_filter
from expense_tracker.models.filters import FilterPreset, FilterState

from support import make_expense


NOW = datetime(2024, 3, 13, 12, 0)


def engine() -> FilterEngine:
    return FilterEngine(clock=lambda: NOW)


def custom(start: date, end: date) -> FilterState:
    return FilterState(preset=FilterPreset.CUSTOM, start_date=start, end_date=end)


class TestDatePresets:
    """Tests for each date preset."""

    def test_all_keeps_everything(self):
        """Test ALL with no category selection."""
        expenses = [
            make_expense("1", date=datetime(2020, 1, 1)),
            make_expense("2", date=datetime(2024, 3, 1)),
        ]
        result = engine().apply(expenses, FilterState())
        assert result.count == 2
        assert result.total == Decimal("3")

    def test_this_month_boundaries(self):
        """Test that the first instant of next month is excluded."""
        first = make_expense("1", date=datetime(2024, 3, 1, 0, 0, 0))
        last = make_expense("2", date=datetime(2024, 3, 31, 23, 59, 59))
        next_month = make_expense("4", date=datetime(2024, 4, 1, 0, 0, 0))
        previous = make_expense("8", date=datetime(2024, 2, 29, 23, 59, 59))

        result = engine().apply(
            [first, last, next_month, previous],
            FilterState(preset=FilterPreset.THIS_MONTH),
        )
        assert {e.id for e in result.expenses} == {first.id, last.id}
        assert result.total == Decimal("3")

    def test_last_month(self):
        """Test LAST_MONTH selects the whole previous month only."""
        february = make_expense("5", date=datetime(2024, 2, 10))
        march = make_expense("7", date=datetime(2024, 3, 1))

        result = engine().apply([february, march], FilterState(preset=FilterPreset.LAST_MONTH))
        assert [e.id for e in result.expenses] == [february.id]

    def test_custom_includes_end_of_last_day(self):
        """Test that 23:59:59 on the end date is inside a custom range."""
        inside = make_expense("1", date=datetime(2024, 3, 5, 23, 59, 59))
        result = engine().apply([inside], custom(date(2024, 3, 1), date(2024, 3, 5)))
        assert result.count == 1

    def test_custom_excludes_fraction_after_end_of_day(self):
        """Test that 23:59:59.5 on the end date is outside a custom range."""
        outside = make_expense("1", date=datetime(2024, 3, 5, 23, 59, 59, 500000))
        result = engine().apply([outside], custom(date(2024, 3, 1), date(2024, 3, 5)))
        assert result.count == 0

    def test_custom_start_is_midnight(self):
        """Test that the start date is included from 00:00:00."""
        at_start = make_expense("1", date=datetime(2024, 3, 1, 0, 0, 0))
        before = make_expense("1", date=datetime(2024, 2, 29, 23, 59, 59))
        result = engine().apply([at_start, before], custom(date(2024, 3, 1), date(2024, 3, 5)))
        assert [e.id for e in result.expenses] == [at_start.id]

    def test_custom_end_before_start_is_empty(self):
        """Test an inverted custom range."""
        expense = make_expense("1", date=datetime(2024, 3, 3))
        result = engine().apply([expense], custom(date(2024, 3, 5), date(2024, 3, 1)))
        assert result.count == 0
        assert result.total == Decimal("0")


class TestCategoryFilter:
    """Tests for the category predicate."""

    def test_empty_selection_passes_everything(self):
        """Test that no selection means no restriction."""
        expenses = [make_expense(category_id="a"), make_expense(category_id="b")]
        assert engine().apply(expenses, FilterState()).count == 2

    def test_selection_keeps_members_only(self):
        """Test category membership."""
        food = make_expense("3", category_id="food")
        rent = make_expense("900", category_id="rent")
        state = FilterState().with_categories({"food"})
        result = engine().apply([food, rent], state)
        assert [e.id for e in result.expenses] == [food.id]
        assert result.total == Decimal("3")

    def test_combined_with_date(self):
        """Test date and category predicates together."""
        keep = make_expense("3", category_id="food", date=datetime(2024, 3, 2))
        wrong_month = make_expense("3", category_id="food", date=datetime(2024, 1, 2))
        wrong_category = make_expense("3", category_id="rent", date=datetime(2024, 3, 2))
        state = FilterState(
            preset=FilterPreset.THIS_MONTH,
            selected_category_ids=frozenset({"food"}),
        )
        result = engine().apply([keep, wrong_month, wrong_category], state)
        assert [e.id for e in result.expenses] == [keep.id]


class TestOrdering:
    """Tests for output order and totals."""

    def test_newest_first(self):
        """Test descending date order."""
        old = make_expense(date=datetime(2024, 3, 1))
        new = make_expense(date=datetime(2024, 3, 10))
        middle = make_expense(date=datetime(2024, 3, 5))
        result = engine().apply([old, new, middle], FilterState())
        assert [e.id for e in result.expenses] == [new.id, middle.id, old.id]

    def test_equal_dates_keep_input_order(self):
        """Test that the sort is stable."""
        first = make_expense(date=datetime(2024, 3, 1))
        second = make_expense(date=datetime(2024, 3, 1))
        third = make_expense(date=datetime(2024, 3, 1))
        result = engine().apply([first, second, third], FilterState())
        assert [e.id for e in result.expenses] == [first.id, second.id, third.id]

    def test_total_is_exact(self):
        """Test decimal totals."""
        expenses = [make_expense("0.1"), make_expense("0.2")]
        assert engine().apply(expenses, FilterState()).total == Decimal("0.3")

    def test_apply_filter_with_fixed_now(self):
        """Test the one-off helper."""
        expense = make_expense(date=datetime(2023, 12, 5))
        state = FilterState(preset=FilterPreset.LAST_MONTH)
        assert apply_filter([expense], state, now=datetime(2024, 1, 15)).count == 1
