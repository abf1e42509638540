"""Tests for method comparison and reference validation helpers."""

import numpy as np
import pandas as pd

from negrate_american import UnifiedPricingEngine
from negrate_american.datatypes import (
    DoubleBoundaryResult,
    EngineConfig,
    MarketParameters,
    PricingMethod,
    SpectralScheme,
)
from negrate_american.evaluation.compare_methods import (
    REFERENCE_CASES,
    boundary_frame,
    check_boundary_constraints,
    compare_methods,
    validate_reference_cases,
)

HEALY_PUT = MarketParameters(100.0, 100.0, 10.0, -0.005, -0.01, 0.08)
FAST_ENGINE = UnifiedPricingEngine(EngineConfig(scheme=SpectralScheme.FAST, fd_space_steps=201,
                                                fd_time_steps=200, compute_theta=False))


class TestBoundaryFrame:
    """DataFrame view of a boundary pair."""

    def test_columns_and_index(self):
        result = DoubleBoundaryResult([0.0, 1.0, 2.0], [100, 90, 80], [50, 60, 80], 2.0)
        frame = boundary_frame(result)
        assert list(frame.columns) == ['upper', 'lower', 'crossed']
        assert frame.index.name == 'tau'
        assert frame['crossed'].tolist() == [False, False, True]


class TestBoundaryConstraints:
    """Physical constraints of solved boundaries."""

    def test_refined_boundaries_pass(self):
        boundaries = FAST_ENGINE.compute_boundaries(HEALY_PUT).boundaries
        checks = check_boundary_constraints(HEALY_PUT, boundaries, price=8.6)
        assert isinstance(checks, pd.Series)
        assert checks['all']

    def test_inverted_pair_fails(self):
        result = DoubleBoundaryResult([0.0, 1.0, 2.0], [100, 60, 55], [50, 70, 52])
        checks = check_boundary_constraints(HEALY_PUT, result)
        assert not checks['ordered']
        assert not checks['all']

    def test_price_below_intrinsic_fails(self):
        params = MarketParameters(80.0, 100.0, 10.0, -0.005, -0.01, 0.08)
        result = DoubleBoundaryResult([0.0, 1.0, 2.0], [100, 95, 90], [50, 55, 60])
        checks = check_boundary_constraints(params, result, price=19.0)
        assert checks['ordered']
        assert not checks['price_floor']


class TestCompareMethods:
    """Side-by-side pricing."""

    def test_rows_per_method(self):
        df = compare_methods(HEALY_PUT, FAST_ENGINE)
        assert len(df) == 3
        assert set(df['method']) == {m.value for m in PricingMethod}
        assert 'diff_from_fd' in df.columns
        fd_row = df[df['method'] == PricingMethod.FINITE_DIFFERENCE.value]
        assert fd_row['diff_from_fd'].iloc[0] == 0.0
        assert np.all(df['time_seconds'] >= 0)

    def test_without_finite_difference(self):
        df = compare_methods(HEALY_PUT, FAST_ENGINE, methods=[PricingMethod.QDPLUS])
        assert 'diff_from_fd' not in df.columns


class TestValidateReferenceCases:
    """Published reference values."""

    def test_reference_table(self):
        assert REFERENCE_CASES['spot'].tolist() == [100.0, 120.0]

    def test_high_precision_hybrid_passes(self):
        df = validate_reference_cases()
        assert df['passed'].all(), df
        assert (df['method_used'] == 'qdplus').all(), df
        assert df['converged'].all(), df
        assert df['abs_error'].max() <= 0.02
