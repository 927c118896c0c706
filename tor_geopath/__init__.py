"""
Tor Path Selection - baseline and geography-aware circuit construction.

This package provides tools for:
- Loading relay populations from consensus files, JSON or synthetic generators
- Selecting three-hop circuits with bandwidth-weighted and geo-aware policies
- Measuring relay and country diversity over repeated selections
- Visualizing Shannon entropy of the chosen countries
"""

__version__ = "0.1.0"

from .network import RelayStore, RelayRecord, RelayFlag, RelayRole, UNKNOWN_COUNTRY
from .circuit import (
    Circuit, PathSelector, PathAlgorithm, PathSelectionError,
    NoSuitableCandidates, InvalidArgument, weighted_choice
)
from .geoip import StaticCountryResolver, CachingCountryResolver, unresolved_country
from .simulator import (
    ExperimentRunner, ExperimentComparison, ExperimentConfig, ExperimentAggregate,
    EntropyCalculator, entropy, to_frame
)
from .visualization import Visualizer

__all__ = [
    "RelayStore",
    "RelayRecord",
    "RelayFlag",
    "RelayRole",
    "UNKNOWN_COUNTRY",
    "Circuit",
    "PathSelector",
    "PathAlgorithm",
    "PathSelectionError",
    "NoSuitableCandidates",
    "InvalidArgument",
    "weighted_choice",
    "StaticCountryResolver",
    "CachingCountryResolver",
    "unresolved_country",
    "ExperimentRunner",
    "ExperimentComparison",
    "ExperimentConfig",
    "ExperimentAggregate",
    "EntropyCalculator",
    "entropy",
    "to_frame",
    "Visualizer",
]
