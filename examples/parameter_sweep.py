#!/usr/bin/env python3
"""
Parameter sweep example.

Runs the geo-aware algorithm over a grid of alpha/beta values and shows
how the country entropy of the selected circuits responds.
"""

import sys
sys.path.append('..')

import numpy as np

from tor_geopath import (
    RelayStore, PathSelector, ExperimentComparison, ExperimentConfig,
    Visualizer, to_frame
)

def parameter_sweep_example():
    print("Tor Path Selection - Parameter Sweep Example")
    print("=" * 50)

    relays = RelayStore.generate_synthetic(
        num_guards=200,
        num_middles=2000,
        num_exits=400,
        countries=["US", "DE", "FR", "NL", "GB", "RU"],
        seed=42
    )
    selector = PathSelector(relays, seed=42)
    config = ExperimentConfig(num_circuits=1000)

    alphas = np.linspace(0.0, 1.0, 6)
    betas = [0.0, 0.5, 1.0]

    print(f"\nTesting alpha values: {list(alphas)}")
    print(f"Testing beta values:  {betas}")

    comparison = ExperimentComparison(selector, config=config)
    results = comparison.parameter_sweep(alphas, betas)

    df = to_frame(results)
    print(df[["alpha", "beta", "entropy_all", "entropy_guard", "entropy_middle"]].to_string(index=False))

    fig = Visualizer().plot_entropy_vs_alpha(results)
    fig.write_html('parameter_sweep_results.html')
    print("\nPlot saved to 'parameter_sweep_results.html'")

if __name__ == '__main__':
    parameter_sweep_example()
