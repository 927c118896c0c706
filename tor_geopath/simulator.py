"""
Experiment engine: repeated path selection and diversity statistics.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set
import logging
import math
import time

import numpy as np
import pandas as pd

from .network import RelayRecord, RelayRole, UNKNOWN_COUNTRY
from .circuit import Circuit, PathAlgorithm, PathSelector
from .geoip import CountryResolver, unresolved_country


# Bookkeeping key for hops whose country came back empty.
UNKNOWN_KEY = "UNKNOWN"


def entropy(frequencies: Mapping[str, int], total: int) -> float:
    """Shannon entropy, in bits, of a frequency table over `total` events."""
    if total == 0:
        return 0.0
    h = 0.0
    for count in frequencies.values():
        if count > 0:
            p = count / total
            h -= p * math.log2(p)
    return max(h, 0.0)


class EntropyCalculator:
    """Diversity metrics over country frequency tables."""

    @staticmethod
    def entropy(frequencies: Mapping[str, int], total: int) -> float:
        return entropy(frequencies, total)

    @staticmethod
    def max_entropy(num_categories: int) -> float:
        """Entropy of a uniform distribution over the categories."""
        return math.log2(num_categories) if num_categories > 0 else 0.0

    @classmethod
    def evenness(cls, frequencies: Mapping[str, int], total: int) -> float:
        """Entropy relative to its maximum for the observed categories (Pielou)."""
        categories = sum(1 for count in frequencies.values() if count > 0)
        if categories <= 1:
            return 0.0
        return cls.entropy(frequencies, total) / cls.max_entropy(categories)


@dataclass
class ExperimentConfig:
    """Configuration for experiment runs."""
    num_circuits: int = 20

    # Geo-aware weighting
    alpha: float = 0.5
    beta: float = 0.2

    first_circuit_id: int = 0

    verbose: bool = False


def _role_sets() -> Dict[RelayRole, Set[str]]:
    return {role: set() for role in RelayRole}


def _role_counters() -> Dict[RelayRole, Counter]:
    return {role: Counter() for role in RelayRole}


@dataclass
class ExperimentAggregate:
    """Distinct relays and country frequencies collected over one run."""
    algorithm: PathAlgorithm = PathAlgorithm.BASELINE
    alpha: float = 0.0
    beta: float = 0.0
    num_circuits: int = 0

    relays_by_role: Dict[RelayRole, Set[str]] = field(default_factory=_role_sets)
    all_relays: Set[str] = field(default_factory=set)

    countries_by_role: Dict[RelayRole, Counter] = field(default_factory=_role_counters)
    all_countries: Counter = field(default_factory=Counter)

    circuit_bandwidths: List[int] = field(default_factory=list)

    simulation_time: float = 0.0

    @property
    def guards(self) -> Set[str]:
        return self.relays_by_role[RelayRole.GUARD]

    @property
    def middles(self) -> Set[str]:
        return self.relays_by_role[RelayRole.MIDDLE]

    @property
    def exits(self) -> Set[str]:
        return self.relays_by_role[RelayRole.EXIT]

    def record(self, circuit: Circuit, countries: Mapping[RelayRole, Optional[str]]) -> None:
        """Fold one circuit and its resolved hop countries into the aggregate."""
        for role, relay in circuit.hops():
            self.relays_by_role[role].add(relay.fingerprint)
            self.all_relays.add(relay.fingerprint)

            key = countries.get(role) or UNKNOWN_KEY
            self.countries_by_role[role][key] += 1
            self.all_countries[key] += 1

        self.circuit_bandwidths.append(circuit.min_bandwidth)
        self.num_circuits += 1

    def country_entropy(self, role: Optional[RelayRole] = None) -> float:
        """Entropy of hop countries for one role, or across all hops."""
        if role is None:
            return entropy(self.all_countries, 3 * self.num_circuits)
        return entropy(self.countries_by_role[role], self.num_circuits)

    def summary(self) -> Dict[str, float]:
        bandwidths = np.array(self.circuit_bandwidths, dtype=float)
        return {
            "algorithm": self.algorithm.value,
            "alpha": self.alpha,
            "beta": self.beta,
            "num_circuits": self.num_circuits,
            "unique_relays": len(self.all_relays),
            "unique_guards": len(self.guards),
            "unique_middles": len(self.middles),
            "unique_exits": len(self.exits),
            "entropy_all": self.country_entropy(),
            "entropy_guard": self.country_entropy(RelayRole.GUARD),
            "entropy_middle": self.country_entropy(RelayRole.MIDDLE),
            "entropy_exit": self.country_entropy(RelayRole.EXIT),
            "mean_min_bandwidth": float(bandwidths.mean()) if bandwidths.size else 0.0,
            "lowest_min_bandwidth": float(bandwidths.min()) if bandwidths.size else 0.0,
            "simulation_time": self.simulation_time,
        }


def to_frame(aggregates: Iterable[ExperimentAggregate]) -> pd.DataFrame:
    """One summary row per aggregate."""
    return pd.DataFrame([aggregate.summary() for aggregate in aggregates])


class ExperimentRunner:
    """Runs repeated path selections and aggregates their diversity."""

    def __init__(self,
                 resolver: Optional[CountryResolver] = None,
                 config: Optional[ExperimentConfig] = None):
        self.resolver = resolver if resolver is not None else unresolved_country
        self.config = config or ExperimentConfig()

        self.logger = logging.getLogger(self.__class__.__name__)
        if self.config.verbose:
            self.logger.setLevel(logging.DEBUG)

    def effective_country(self, relay: RelayRecord) -> str:
        """Country of a relay, asking the resolver only while it is unknown."""
        if relay.is_country_resolved:
            return relay.country_code

        if not relay.address:
            country = UNKNOWN_COUNTRY
        else:
            country = self.resolver(relay.address)

        relay.set_country(country)
        if relay.is_country_resolved:
            return relay.country_code
        # "XX" stays countable as such; blank answers fall through to UNKNOWN.
        return UNKNOWN_COUNTRY if (country or "").strip() else ""

    def run(self,
            selector: PathSelector,
            num_circuits: Optional[int] = None,
            algorithm: PathAlgorithm = PathAlgorithm.BASELINE,
            alpha: Optional[float] = None,
            beta: Optional[float] = None) -> ExperimentAggregate:
        """Select `num_circuits` circuits and aggregate them.

        Selection errors are not caught; a failing circuit aborts the run.
        """
        num_circuits = self.config.num_circuits if num_circuits is None else num_circuits
        alpha = self.config.alpha if alpha is None else alpha
        beta = self.config.beta if beta is None else beta

        start_time = time.time()
        self.logger.info(f"Running {num_circuits} {algorithm.value} selections")

        aggregate = ExperimentAggregate(algorithm=algorithm, alpha=alpha, beta=beta)

        for i in range(num_circuits):
            circuit_id = self.config.first_circuit_id + i
            circuit = selector.select(circuit_id, algorithm, alpha, beta)

            countries = {role: self.effective_country(relay) for role, relay in circuit.hops()}
            aggregate.record(circuit, countries)

            self.logger.debug(f"Circuit {circuit_id}: {circuit} "
                              f"(min bandwidth {circuit.min_bandwidth})")

        aggregate.simulation_time = time.time() - start_time
        self.logger.info(f"Run completed in {aggregate.simulation_time:.2f} seconds, "
                         f"country entropy {aggregate.country_entropy():.4f} bits")

        return aggregate


class ExperimentComparison:
    """Run both algorithms, or a grid of geo-aware weights, on one selector."""

    def __init__(self,
                 selector: PathSelector,
                 runner: Optional[ExperimentRunner] = None,
                 config: Optional[ExperimentConfig] = None):
        self.selector = selector
        self.config = config or (runner.config if runner else ExperimentConfig())
        self.runner = runner or ExperimentRunner(config=self.config)
        self.results: List[ExperimentAggregate] = []

    def run(self) -> Dict[str, ExperimentAggregate]:
        """Baseline then geo-aware, with the configured alpha and beta."""
        results = {}
        for algorithm in (PathAlgorithm.BASELINE, PathAlgorithm.GEO_AWARE):
            results[algorithm.value] = self.runner.run(
                self.selector,
                self.config.num_circuits,
                algorithm,
                self.config.alpha,
                self.config.beta,
            )
        self.results.extend(results.values())
        return results

    def parameter_sweep(self,
                        alpha_values: Iterable[float],
                        beta_values: Optional[Iterable[float]] = None) -> List[ExperimentAggregate]:
        """Geo-aware runs over every (alpha, beta) pair."""
        beta_values = list(beta_values) if beta_values is not None else [self.config.beta]
        results = []

        for alpha in alpha_values:
            for beta in beta_values:
                results.append(self.runner.run(
                    self.selector,
                    self.config.num_circuits,
                    PathAlgorithm.GEO_AWARE,
                    alpha,
                    beta,
                ))

        self.results.extend(results)
        return results
