#!/usr/bin/env python3
"""
Basic usage example for the Tor path selection toolkit.

This script demonstrates the fundamental workflow:
1. Generate a synthetic relay population
2. Select a baseline and a geo-aware circuit
3. Run both algorithms repeatedly
4. Compare country entropy
5. Visualize results
"""

import sys
sys.path.append('..')

from tor_geopath import (
    RelayStore, RelayRole, PathSelector, ExperimentComparison, ExperimentConfig,
    Visualizer
)

def main():
    print("Tor Path Selection - Basic Example")
    print("=" * 40)

    # Step 1: Generate a synthetic relay population
    print("\n1. Generating synthetic relays...")
    relays = RelayStore.generate_synthetic(
        num_guards=100,
        num_middles=1000,
        num_exits=200,
        seed=42
    )
    print(f"   {relays}")

    # Step 2: Select single circuits
    print("\n2. Selecting circuits...")
    selector = PathSelector(relays, seed=42)
    baseline = selector.select_baseline(1)
    geo = selector.select_geo_aware(2, alpha=0.5, beta=0.2)
    print(f"   Baseline:  {baseline} (min bandwidth {baseline.min_bandwidth})")
    print(f"   Geo-aware: {geo} (min bandwidth {geo.min_bandwidth})")

    # Step 3: Run experiments
    print("\n3. Running 2000 selections per algorithm...")
    config = ExperimentConfig(num_circuits=2000, alpha=0.5, beta=0.2)
    results = ExperimentComparison(selector, config=config).run()

    # Step 4: Display results
    print("\n4. Results:")
    for name, aggregate in results.items():
        print(f"   {name}:")
        print(f"     Unique relays:   {len(aggregate.all_relays)}")
        print(f"     Entropy (all):   {aggregate.country_entropy():.4f} bits")
        print(f"     Entropy (guard): {aggregate.country_entropy(RelayRole.GUARD):.4f} bits")
        print(f"     Entropy (middle):{aggregate.country_entropy(RelayRole.MIDDLE):.4f} bits")

    # Step 5: Visualization
    print("\n5. Creating visualization...")
    fig = Visualizer().plot_entropy_comparison(results)
    fig.write_html('basic_example_results.html')
    print("   Visualization saved to 'basic_example_results.html'")

if __name__ == '__main__':
    main()
