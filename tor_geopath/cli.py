"""
Command-line interface for the path selection diversity toolkit.
"""

import logging
import sys
from typing import Optional

import click
import numpy as np

from . import (
    RelayStore, RelayRole, PathSelector, PathSelectionError,
    ExperimentRunner, ExperimentComparison, ExperimentConfig,
    StaticCountryResolver, CachingCountryResolver, Visualizer, to_frame,
)
from .visualization import save_plots


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _load_relays(network: Optional[str], consensus: Optional[str]) -> RelayStore:
    if network and consensus:
        raise click.UsageError("Cannot specify both --network and --consensus")
    if consensus:
        click.echo(f"Loading relays from consensus: {consensus}")
        return RelayStore.from_consensus(consensus)
    if network:
        click.echo(f"Loading relays from: {network}")
        return RelayStore.from_json(network)
    raise click.UsageError("One of --network or --consensus is required")


def _make_runner(geoip: Optional[str], config: ExperimentConfig) -> ExperimentRunner:
    resolver = None
    if geoip:
        resolver = CachingCountryResolver(StaticCountryResolver.from_csv(geoip))
    return ExperimentRunner(resolver=resolver, config=config)


def _echo_circuit(label: str, circuit, runner: ExperimentRunner) -> None:
    click.echo(f"\n=== Circuit {circuit.circuit_id} ({label}) ===")
    for role, relay in circuit.hops():
        country = runner.effective_country(relay)
        click.echo(f"{role.value.title() + ':':8}{relay.nickname} ({relay.address}, {country})")
    click.echo(f"Circuit min bandwidth: {circuit.min_bandwidth}")


def _echo_aggregate(name: str, aggregate) -> None:
    click.echo(f"\n=== Distinct relays used ({name}) ===")
    click.echo(f"Total unique relays: {len(aggregate.all_relays)}")
    click.echo(f"Guards:  {len(aggregate.guards)}")
    click.echo(f"Middles: {len(aggregate.middles)}")
    click.echo(f"Exits:   {len(aggregate.exits)}")

    click.echo(f"\n=== Shannon entropy of country selection ({name}) ===")
    click.echo(f"Global: {aggregate.country_entropy():.4f}")
    click.echo(f"Guard:  {aggregate.country_entropy(RelayRole.GUARD):.4f}")
    click.echo(f"Middle: {aggregate.country_entropy(RelayRole.MIDDLE):.4f}")
    click.echo(f"Exit:   {aggregate.country_entropy(RelayRole.EXIT):.4f}")


relay_source_options = [
    click.option('--network', '-n', type=click.Path(exists=True),
                 help='Path to relay JSON file'),
    click.option('--consensus', type=click.Path(exists=True),
                 help='Path to a network-status consensus file'),
    click.option('--geoip', type=click.Path(exists=True),
                 help='CSV with ip,country columns for unresolved relays'),
]


def with_relay_source(func):
    for option in reversed(relay_source_options):
        func = option(func)
    return func


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx, verbose):
    """Tor path selection - baseline vs geography-aware diversity."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
@click.option('--guards', default=100, type=int, help='Number of guard relays')
@click.option('--middles', default=1000, type=int, help='Number of middle-only relays')
@click.option('--exits', default=200, type=int, help='Number of exit relays')
@click.option('--countries', type=str, help='Comma-separated list of country codes')
@click.option('--output', '-o', type=click.Path(), required=True,
              help='Output file for relay data')
@click.option('--seed', type=int, help='Random seed for reproducibility')
def generate_network(guards, middles, exits, countries, output, seed):
    """Generate a synthetic relay population."""
    country_list = [x.strip().upper() for x in countries.split(',')] if countries else None

    click.echo(f"Generating synthetic relays: {guards} guards, {middles} middles, {exits} exits")
    relays = RelayStore.generate_synthetic(
        num_guards=guards,
        num_middles=middles,
        num_exits=exits,
        countries=country_list,
        seed=seed
    )
    click.echo(str(relays))

    relays.to_json(output)
    click.echo(f"Relays saved to: {output}")


@cli.command()
@with_relay_source
@click.option('--alpha', type=float, default=0.5, help='Guard country diversity weight')
@click.option('--beta', type=float, default=0.2, help='Middle country diversity weight')
@click.option('--seed', type=int, help='Random seed')
@click.pass_context
def select(ctx, network, consensus, geoip, alpha, beta, seed):
    """Select one baseline and one geo-aware circuit."""
    relays = _load_relays(network, consensus)
    click.echo(f"Relays loaded: {len(relays)}")

    selector = PathSelector(relays, seed=seed)
    runner = _make_runner(geoip, ExperimentConfig(verbose=ctx.obj['verbose']))

    try:
        baseline = selector.select_baseline(1)
        geo = selector.select_geo_aware(2, alpha, beta)
    except PathSelectionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _echo_circuit("baseline", baseline, runner)
    _echo_circuit("geo-aware", geo, runner)


@cli.command()
@with_relay_source
@click.option('--circuits', '-c', type=int, default=20, help='Number of circuits per algorithm')
@click.option('--alpha', type=float, default=0.5, help='Guard country diversity weight')
@click.option('--beta', type=float, default=0.2, help='Middle country diversity weight')
@click.option('--seed', type=int, help='Random seed')
@click.option('--plot-dir', type=click.Path(), help='Write comparison plots to this directory')
@click.pass_context
def experiment(ctx, network, consensus, geoip, circuits, alpha, beta, seed, plot_dir):
    """Compare baseline and geo-aware selection diversity."""
    relays = _load_relays(network, consensus)

    config = ExperimentConfig(
        num_circuits=circuits,
        alpha=alpha,
        beta=beta,
        verbose=ctx.obj['verbose']
    )
    selector = PathSelector(relays, seed=seed)
    comparison = ExperimentComparison(selector, _make_runner(geoip, config), config)

    click.echo(f"Running simulation with {circuits} circuits per algorithm...")
    try:
        results = comparison.run()
    except PathSelectionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for name, aggregate in results.items():
        _echo_aggregate(name, aggregate)

    if plot_dir:
        visualizer = Visualizer()
        figures = {
            'entropy_comparison': visualizer.plot_entropy_comparison(results),
            'bandwidth_distribution': visualizer.plot_bandwidth_distribution(results),
            'dashboard': visualizer.create_dashboard(results),
        }
        for name, aggregate in results.items():
            figures[f'countries_{name}'] = visualizer.plot_country_distribution(aggregate)
        save_plots(figures, plot_dir)
        click.echo(f"Plots saved to: {plot_dir}")


@cli.command()
@with_relay_source
@click.option('--circuits', '-c', type=int, default=200, help='Number of circuits per run')
@click.option('--min-alpha', type=float, default=0.0, help='Smallest alpha')
@click.option('--max-alpha', type=float, default=1.0, help='Largest alpha')
@click.option('--steps', type=int, default=5, help='Number of alpha values')
@click.option('--betas', type=str, default='0.2', help='Comma-separated beta values')
@click.option('--seed', type=int, help='Random seed')
@click.option('--plot-dir', type=click.Path(), help='Write the sweep plot to this directory')
@click.pass_context
def sweep(ctx, network, consensus, geoip, circuits, min_alpha, max_alpha, steps, betas,
          seed, plot_dir):
    """Sweep the geo-aware weights and report entropy."""
    relays = _load_relays(network, consensus)

    config = ExperimentConfig(num_circuits=circuits, verbose=ctx.obj['verbose'])
    selector = PathSelector(relays, seed=seed)
    comparison = ExperimentComparison(selector, _make_runner(geoip, config), config)

    alpha_values = [float(a) for a in np.linspace(min_alpha, max_alpha, max(steps, 1))]
    beta_values = [float(x.strip()) for x in betas.split(',')]

    click.echo(f"Running parameter sweep: alpha from {min_alpha} to {max_alpha}, beta in {beta_values}")
    try:
        results = comparison.parameter_sweep(alpha_values, beta_values)
    except PathSelectionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    df = to_frame(results)
    click.echo(df[["alpha", "beta", "unique_relays", "entropy_all",
                   "entropy_guard", "entropy_middle"]].to_string(index=False))

    if plot_dir:
        figures = {'entropy_vs_alpha': Visualizer().plot_entropy_vs_alpha(results)}
        save_plots(figures, plot_dir)
        click.echo(f"Plot saved to: {plot_dir}")


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()
