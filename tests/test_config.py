"""Tests for configuration parsing."""

import pytest

from negrate_american.config import default_config, parse_config
from negrate_american.datatypes import EngineConfig, FixedPointEquation, SchemeSettings, SpectralScheme
from negrate_american.exceptions import ValidationError


class TestParseConfig:
    """Parsing option mappings into EngineConfig."""

    def test_defaults(self):
        config = default_config()
        assert config == EngineConfig()
        assert config.scheme is SpectralScheme.ACCURATE
        assert config.equation is FixedPointEquation.AUTO
        assert config.near_expiry_threshold == pytest.approx(1.0 / 252.0)

    def test_empty_mapping_is_default(self):
        assert parse_config({}) == default_config()

    def test_enum_strings(self):
        config = parse_config({'scheme': 'HIGH_PRECISION', 'equation': 'fp_a'})
        assert config.scheme is SpectralScheme.HIGH_PRECISION
        assert config.equation is FixedPointEquation.FP_A

    def test_type_coercion(self):
        config = parse_config({'fd_space_steps': 401.0, 'tolerance': '1e-6', 'compute_theta': 0})
        assert config.fd_space_steps == 401 and isinstance(config.fd_space_steps, int)
        assert config.tolerance == 1e-6
        assert config.compute_theta is False

    def test_scheme_settings_mapping(self):
        config = parse_config({'scheme_settings': {'node_count': 12, 'max_iterations': 5,
                                                   'tolerance': 1e-4, 'quadrature_order': 8}})
        assert config.scheme_settings == SchemeSettings(12, 5, 1e-4, 8)

    @pytest.mark.parametrize("args", [
        {'unknown': 1},
        {'scheme': 'slow'},
        {'tolerance': 0.0},
        {'fd_space_steps': 5},
        {'fd_std_devs': -1.0},
        {'near_expiry_threshold': 0.0},
        {'vol_bump': 0.0},
        {'scheme_settings': {'node_count': 0, 'max_iterations': 5,
                             'tolerance': 1e-4, 'quadrature_order': 8}},
    ])
    def test_invalid(self, args):
        with pytest.raises(ValidationError):
            parse_config(args)
