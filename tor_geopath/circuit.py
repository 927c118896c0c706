"""
Circuit representation and three-hop path selection.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, TypeVar
from enum import Enum

import numpy as np

from .network import RelayRecord, RelayRole, RelayStore, same_address_group


T = TypeVar("T")


class PathAlgorithm(Enum):
    """Available path selection algorithms."""
    BASELINE = "baseline"
    GEO_AWARE = "geo"


class PathSelectionError(Exception):
    """Base class for path selection failures."""


class NoSuitableCandidates(PathSelectionError):
    """Raised when filtering leaves no relay for a circuit position."""

    def __init__(self, role: RelayRole, detail: str = ""):
        self.role = role
        message = f"No suitable {role.value} relays found"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidArgument(PathSelectionError, ValueError):
    """Raised by the weighted draw on malformed input."""

    def __init__(self, argument: str, message: str):
        self.argument = argument
        super().__init__(f"{argument}: {message}")


def compute_min_bandwidth(relays: Sequence[RelayRecord]) -> int:
    """Smallest bandwidth among the relays, 0 for an empty sequence."""
    minimum = None
    for relay in relays:
        if relay is None:
            continue
        if minimum is None or relay.bandwidth < minimum:
            minimum = relay.bandwidth
    return 0 if minimum is None else minimum


@dataclass(frozen=True)
class Circuit:
    """Represents a Tor circuit (3-hop path)."""
    circuit_id: int
    relays: Tuple[RelayRecord, ...]
    min_bandwidth: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "relays", tuple(self.relays))
        object.__setattr__(self, "min_bandwidth", compute_min_bandwidth(self.relays))

    @classmethod
    def from_hops(cls, circuit_id: int,
                  guard: RelayRecord, middle: RelayRecord, exit_relay: RelayRecord) -> "Circuit":
        return cls(circuit_id, (guard, middle, exit_relay))

    @property
    def guard(self) -> RelayRecord:
        return self.relays[0]

    @property
    def middle(self) -> RelayRecord:
        return self.relays[1]

    @property
    def exit(self) -> RelayRecord:
        return self.relays[2]

    def hops(self) -> List[Tuple[RelayRole, RelayRecord]]:
        """Pair each relay with its circuit position."""
        return list(zip((RelayRole.GUARD, RelayRole.MIDDLE, RelayRole.EXIT), self.relays))

    @property
    def fingerprints(self) -> List[str]:
        return [relay.fingerprint for relay in self.relays]

    @property
    def countries(self) -> List[str]:
        return [relay.country for relay in self.relays]

    def compute_min_bandwidth(self) -> int:
        """Recompute the minimum bandwidth from the relays."""
        return compute_min_bandwidth(self.relays)

    def has_geographic_diversity(self) -> bool:
        """Check that no two resolved hop countries coincide."""
        countries = [r.country_code for r in self.relays if r.is_country_resolved]
        return len(set(countries)) == len(countries)

    def __str__(self) -> str:
        return " -> ".join(relay.nickname for relay in self.relays)


def weighted_choice(candidates: Sequence[T], weights: Sequence[float], rng: np.random.Generator) -> T:
    """Draw one candidate with probability proportional to its weight.

    Non-positive weights never win the draw. If no weight is positive the
    pick is uniform over the candidates.
    """
    if len(candidates) == 0:
        raise InvalidArgument("candidates", "no candidates to choose from")
    if len(weights) != len(candidates):
        raise InvalidArgument(
            "weights",
            f"length {len(weights)} does not match {len(candidates)} candidates")

    total = 0.0
    for weight in weights:
        if weight > 0:
            total += weight

    if total <= 0.0:
        return candidates[int(rng.integers(len(candidates)))]

    r = rng.random() * total
    cumulative = 0.0
    for candidate, weight in zip(candidates, weights):
        cumulative += max(0.0, weight)
        if cumulative > r:
            return candidate

    # Only reachable through float rounding at the top of the range.
    return candidates[-1]


class PathSelector:
    """Selects guard, middle and exit relays for a circuit.

    Candidate pools are rebuilt from the store on every call. The exit is
    chosen first and later hops are constrained against it, never the
    other way round.
    """

    def __init__(self,
                 relays: RelayStore,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None):
        if not isinstance(relays, RelayStore):
            relays = RelayStore(relays)
        self.relays = relays
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    # Eligibility

    def exit_candidates(self) -> List[RelayRecord]:
        return [r for r in self.relays if r.is_suitable_exit]

    def guard_candidates(self, exit_relay: RelayRecord) -> List[RelayRecord]:
        return [r for r in self.relays
                if r.is_guard
                and r is not exit_relay
                and not same_address_group(r, exit_relay)]

    def middle_candidates(self, guard: RelayRecord, exit_relay: RelayRecord) -> List[RelayRecord]:
        return [r for r in self.relays
                if r.is_fast
                and r is not guard and r is not exit_relay
                and not same_address_group(r, exit_relay)
                and not same_address_group(r, guard)]

    # Sampling

    def _select_by_bandwidth(self, candidates: List[RelayRecord]) -> RelayRecord:
        return weighted_choice(candidates, [r.bandwidth for r in candidates], self.rng)

    def _select_exit(self) -> RelayRecord:
        candidates = self.exit_candidates()
        if not candidates:
            raise NoSuitableCandidates(RelayRole.EXIT)
        return self._select_by_bandwidth(candidates)

    def _select_guard(self, exit_relay: RelayRecord) -> RelayRecord:
        candidates = self.guard_candidates(exit_relay)
        if not candidates:
            raise NoSuitableCandidates(RelayRole.GUARD)
        return self._select_by_bandwidth(candidates)

    def _select_middle(self, guard: RelayRecord, exit_relay: RelayRecord) -> RelayRecord:
        candidates = self.middle_candidates(guard, exit_relay)
        if not candidates:
            raise NoSuitableCandidates(RelayRole.MIDDLE)
        return self._select_by_bandwidth(candidates)

    def select_baseline(self, circuit_id: int) -> Circuit:
        """Build a circuit with plain bandwidth-weighted selection."""
        exit_relay = self._select_exit()
        guard = self._select_guard(exit_relay)
        middle = self._select_middle(guard, exit_relay)
        return Circuit.from_hops(circuit_id, guard, middle, exit_relay)

    # Geography-aware variant

    @staticmethod
    def guard_weights(candidates: List[RelayRecord], exit_relay: RelayRecord, alpha: float) -> List[float]:
        """Favour guards located outside the exit's country by (1 + alpha).

        A guard or exit with no resolved country never earns the bonus.
        """
        weights = []
        for relay in candidates:
            if relay.bandwidth <= 0:
                weights.append(0.0)
            elif (relay.is_country_resolved and exit_relay.is_country_resolved
                  and relay.country_code != exit_relay.country_code):
                weights.append(relay.bandwidth * (1.0 + alpha))
            else:
                weights.append(float(relay.bandwidth))
        return weights

    @staticmethod
    def middle_weights(candidates: List[RelayRecord],
                       guard: RelayRecord, exit_relay: RelayRecord, beta: float) -> List[float]:
        """Favour middles sharing a country with neither guard nor exit.

        An unresolved country is never counted as shared, even with another
        unresolved hop.
        """
        weights = []
        for relay in candidates:
            if relay.bandwidth <= 0:
                weights.append(0.0)
                continue

            shared = 0
            if relay.is_country_resolved:
                if relay.country_code == guard.country_code:
                    shared += 1
                if relay.country_code == exit_relay.country_code:
                    shared += 1

            if shared == 2:
                c = 1
            elif shared == 1:
                c = 2
            else:
                c = 3

            weights.append(relay.bandwidth * (1.0 + beta * c))
        return weights

    def select_geo_aware(self, circuit_id: int, alpha: float, beta: float) -> Circuit:
        """Build a circuit that biases guard and middle toward new countries.

        alpha and beta are clamped to [0, 1].
        """
        alpha = max(0.0, min(1.0, alpha))
        beta = max(0.0, min(1.0, beta))

        exit_relay = self._select_exit()

        guards = self.guard_candidates(exit_relay)
        if not guards:
            raise NoSuitableCandidates(RelayRole.GUARD, "geo-aware")
        guard = weighted_choice(guards, self.guard_weights(guards, exit_relay, alpha), self.rng)

        middles = self.middle_candidates(guard, exit_relay)
        if not middles:
            raise NoSuitableCandidates(RelayRole.MIDDLE, "geo-aware")
        middle = weighted_choice(middles, self.middle_weights(middles, guard, exit_relay, beta), self.rng)

        return Circuit.from_hops(circuit_id, guard, middle, exit_relay)

    def select(self, circuit_id: int,
               algorithm: PathAlgorithm = PathAlgorithm.BASELINE,
               alpha: float = 0.0, beta: float = 0.0) -> Circuit:
        """Dispatch to the selected algorithm."""
        if algorithm == PathAlgorithm.BASELINE:
            return self.select_baseline(circuit_id)
        elif algorithm == PathAlgorithm.GEO_AWARE:
            return self.select_geo_aware(circuit_id, alpha, beta)
        else:
            raise ValueError(f"Unknown path algorithm: {algorithm}")
