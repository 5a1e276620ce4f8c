import pytest

from core.exceptions import ValidationError
from services.stock_calculator import NOT_DERIVED, compute_available


class TestComputeAvailable:
    def test_scarcest_component_wins(self):
        assert compute_available([(10, 2), (3, 1)]) == 3

    def test_floor_division(self):
        assert compute_available([(7, 2)]) == 3
        assert compute_available([(1, 2)]) == 0

    def test_no_components_is_not_derived(self):
        assert compute_available([]) is NOT_DERIVED
        assert compute_available([]) is None

    def test_single_empty_component_blocks_product(self):
        assert compute_available([(100, 1), (0, 5)]) == 0

    def test_missing_or_negative_stock_counts_as_zero(self):
        assert compute_available([(None, 1), (10, 1)]) == 0
        assert compute_available([(-4, 1)]) == 0

    def test_accepts_generators(self):
        pairs = ((s, q) for s, q in [(9, 3), (20, 4)])
        assert compute_available(pairs) == 3

    def test_same_input_same_result(self):
        components = [(10, 2), (3, 1), (50, 7)]
        assert compute_available(components) == compute_available(components) == 3

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, quantity):
        with pytest.raises(ValidationError):
            compute_available([(10, quantity)])
