#!/usr/bin/env python3
"""
Reference Validation: double-boundary American put
Prices the published negative-rate cases with every method and checks the
solved boundaries.
"""

import sys
import logging
from pathlib import Path
import argparse
import pandas as pd

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from negrate_american import MarketParameters, UnifiedPricingEngine
from negrate_american.config import parse_config
from negrate_american.datatypes import OptionRight, PricingMethod, SpectralScheme
from negrate_american.evaluation.compare_methods import (
    REFERENCE_MARKET,
    boundary_frame,
    check_boundary_constraints,
    compare_methods,
    validate_reference_cases,
)


def main():
    parser = argparse.ArgumentParser(description="Validate the engine on negative-rate reference cases")

    # Scheme settings
    parser.add_argument('--scheme', default=SpectralScheme.HIGH_PRECISION.value,
                        choices=[s.value for s in SpectralScheme], help='Spectral scheme')
    parser.add_argument('--method', default=PricingMethod.HYBRID.value,
                        choices=[m.value for m in PricingMethod], help='Pricing method for validation')
    parser.add_argument('--fd-space-steps', type=int, default=801, help='FD spatial grid points')
    parser.add_argument('--fd-time-steps', type=int, default=1000, help='FD time steps')

    # Options
    parser.add_argument('--spot', type=float, default=100.0, help='Spot for the method comparison')
    parser.add_argument('--call', action='store_true', help='Compare methods on the mirrored call')
    parser.add_argument('--show-boundaries', action='store_true', help='Print the refined boundaries')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    engine = UnifiedPricingEngine(parse_config({
        'scheme': args.scheme,
        'fd_space_steps': args.fd_space_steps,
        'fd_time_steps': args.fd_time_steps,
    }))
    scheme = SpectralScheme(args.scheme)

    print("\n" + "="*80)
    print("REFERENCE CASES (K=100, tau=10, sigma=8%, r=-0.5%, q=-1%)")
    print("="*80)
    reference = validate_reference_cases(engine, PricingMethod(args.method), scheme)
    print(reference.to_string(index=False))

    market = dict(REFERENCE_MARKET)
    if args.call:
        market.update(rate=REFERENCE_MARKET['dividend_yield'],
                      dividend_yield=REFERENCE_MARKET['rate'], right=OptionRight.CALL)
    params = MarketParameters(spot=args.spot, **market)

    print("\n" + "="*80)
    print(f"METHOD COMPARISON (S={args.spot}, {params.right.value})")
    print("="*80)
    with pd.option_context('display.width', 160, 'display.max_columns', None):
        print(compare_methods(params, engine, scheme=scheme).to_string(index=False))

    refinement = engine.compute_boundaries(params, scheme)
    checks = check_boundary_constraints(params, refinement.boundaries)
    print("\n" + "="*80)
    print(f"BOUNDARIES: converged={refinement.converged}, iterations={refinement.iterations}, "
          f"crossing time={refinement.boundaries.crossing_time:.4f}")
    print("="*80)
    print(checks.to_string())
    if args.show_boundaries:
        print(boundary_frame(refinement.boundaries).to_string())

    if not reference['passed'].all():
        sys.exit(1)


if __name__ == "__main__":
    main()
