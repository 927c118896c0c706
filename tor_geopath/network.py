"""
Relay records and the relay store consumed by path selection.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple
from enum import Enum
import json
import logging

import numpy as np
from stem.descriptor import DocumentHandler, parse_file


logger = logging.getLogger(__name__)

# Wire value for a country that could not be resolved.
UNKNOWN_COUNTRY = "XX"

CONSENSUS_DESCRIPTOR_TYPE = "network-status-consensus-3 1.0"


class RelayRole(Enum):
    """Positions a relay can take in a circuit."""
    GUARD = "guard"
    MIDDLE = "middle"
    EXIT = "exit"


class RelayFlag(Enum):
    """Tor relay flags."""
    AUTHORITY = "Authority"
    BAD_EXIT = "BadExit"
    EXIT = "Exit"
    FAST = "Fast"
    GUARD = "Guard"
    HSDIR = "HSDir"
    MIDDLE_ONLY = "MiddleOnly"
    NAMED = "Named"
    NO_ED_CONSENSUS = "NoEdConsensus"
    RUNNING = "Running"
    STABLE = "Stable"
    STALE_DESC = "StaleDesc"
    SYBIL = "Sybil"
    UNNAMED = "Unnamed"
    VALID = "Valid"
    V2DIR = "V2Dir"

    @classmethod
    def from_names(cls, names: Iterable) -> FrozenSet["RelayFlag"]:
        """Resolve free-form flag names once; names we don't model are dropped."""
        flags = set()
        for name in names:
            if isinstance(name, cls):
                flags.add(name)
                continue
            try:
                flags.add(cls(name))
            except ValueError:
                logger.debug("Ignoring unknown relay flag %r", name)
        return frozenset(flags)


def address_group(address: Optional[str]) -> Optional[Tuple[str, str]]:
    """First two dot-separated components of an address, or None.

    This is a textual stand-in for a /16 network, not CIDR arithmetic.
    """
    if not address:
        return None
    parts = address.split(".")
    while parts and parts[-1] == "":
        parts.pop()
    if len(parts) < 2:
        return None
    return parts[0], parts[1]


def same_address_group(a: Optional["RelayRecord"], b: Optional["RelayRecord"]) -> bool:
    """Check whether two relays sit in the same /16-equivalent group."""
    if a is None or b is None:
        return False
    group_a = address_group(a.address)
    group_b = address_group(b.address)
    if group_a is None or group_b is None:
        return False
    return group_a == group_b


def _normalize_country(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    code = code.strip().upper()
    if not code or code == UNKNOWN_COUNTRY:
        return None
    return code


@dataclass(eq=False)
class RelayRecord:
    """A relay descriptor as seen by path selection.

    Everything except the country is fixed at ingestion. The country starts
    out unresolved (None) unless the source knew it, and is filled in lazily
    by the experiment runner through a country resolver.
    """
    fingerprint: str
    nickname: str
    address: str
    or_port: int = 0
    dir_port: Optional[int] = None

    bandwidth: int = 0  # consensus weight

    country_code: Optional[str] = None

    flags: FrozenSet[RelayFlag] = field(default_factory=frozenset)
    exit_policy: Optional[str] = None  # policy summary, e.g. "accept 80,443"

    published: Optional[str] = None

    def __post_init__(self):
        self.flags = RelayFlag.from_names(self.flags)
        self.country_code = _normalize_country(self.country_code)

    @property
    def is_fast(self) -> bool:
        return RelayFlag.FAST in self.flags

    @property
    def is_guard(self) -> bool:
        return RelayFlag.GUARD in self.flags

    @property
    def rejects_all_traffic(self) -> bool:
        """Check if the exit policy summary refuses every destination."""
        if self.exit_policy is None:
            return False
        policy = self.exit_policy.strip().lower()
        return policy.startswith("reject *:*") or policy == "reject 1-65535"

    @property
    def is_suitable_exit(self) -> bool:
        return self.is_fast and not self.rejects_all_traffic

    @property
    def is_country_resolved(self) -> bool:
        return self.country_code is not None

    @property
    def country(self) -> str:
        """Country code, with unresolved rendered as "XX"."""
        return self.country_code or UNKNOWN_COUNTRY

    def set_country(self, code: Optional[str]) -> None:
        """Cache a resolver answer on the record."""
        self.country_code = _normalize_country(code)

    @classmethod
    def from_router_status(cls, entry) -> "RelayRecord":
        """Build a record from a stem router status entry."""
        published = entry.published.isoformat() if entry.published else None
        exit_policy = str(entry.exit_policy) if entry.exit_policy is not None else None
        return cls(
            fingerprint=entry.fingerprint,
            nickname=entry.nickname,
            address=entry.address,
            or_port=entry.or_port or 0,
            dir_port=entry.dir_port or None,
            bandwidth=entry.bandwidth or 0,
            flags=entry.flags or (),
            exit_policy=exit_policy,
            published=published,
        )

    def to_dict(self) -> Dict:
        return {
            "fingerprint": self.fingerprint,
            "nickname": self.nickname,
            "address": self.address,
            "or_port": self.or_port,
            "dir_port": self.dir_port,
            "bandwidth": self.bandwidth,
            "country_code": self.country_code,
            "flags": sorted(flag.value for flag in self.flags),
            "exit_policy": self.exit_policy,
            "published": self.published,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RelayRecord":
        return cls(
            fingerprint=data["fingerprint"],
            nickname=data["nickname"],
            address=data["address"],
            or_port=data.get("or_port", 0),
            dir_port=data.get("dir_port"),
            bandwidth=data.get("bandwidth", 0),
            country_code=data.get("country_code"),
            flags=data.get("flags", []),
            exit_policy=data.get("exit_policy"),
            published=data.get("published"),
        )

    def __str__(self) -> str:
        return f"{self.nickname} ({self.address}, {self.country})"


class RelayStore:
    """An ordered, read-only collection of relays.

    Registry order is preserved because weighted sampling walks candidate
    pools in that order.
    """

    def __init__(self, relays: Iterable[RelayRecord] = ()):
        self._relays: Tuple[RelayRecord, ...] = tuple(relays)
        self._by_fingerprint: Dict[str, RelayRecord] = {}
        for relay in self._relays:
            if relay.fingerprint in self._by_fingerprint:
                raise ValueError(f"Duplicate relay fingerprint: {relay.fingerprint}")
            self._by_fingerprint[relay.fingerprint] = relay

    @property
    def relays(self) -> Tuple[RelayRecord, ...]:
        return self._relays

    def relays_with_flag(self, flag: RelayFlag) -> List[RelayRecord]:
        """Get all relays carrying a flag, in registry order."""
        return [relay for relay in self._relays if flag in relay.flags]

    def country_distribution(self) -> Dict[str, int]:
        """Get distribution of relays by country."""
        country_counts = {}
        for relay in self._relays:
            country = relay.country
            country_counts[country] = country_counts.get(country, 0) + 1
        return country_counts

    @classmethod
    def from_consensus(cls, consensus_path: str) -> "RelayStore":
        """Load relays from a network-status consensus file on disk."""
        relays = []
        for entry in parse_file(consensus_path,
                                descriptor_type=CONSENSUS_DESCRIPTOR_TYPE,
                                document_handler=DocumentHandler.ENTRIES):
            relays.append(RelayRecord.from_router_status(entry))
        logger.info("Parsed %d relays from %s", len(relays), consensus_path)
        return cls(relays)

    @classmethod
    def generate_synthetic(cls,
                           num_guards: int = 100,
                           num_middles: int = 1000,
                           num_exits: int = 200,
                           countries: Optional[List[str]] = None,
                           seed: Optional[int] = None) -> "RelayStore":
        """Generate a synthetic relay population for experiments."""
        rng = np.random.default_rng(seed)

        if countries is None:
            countries = ["US", "DE", "FR", "NL", "GB", "CA", "SE", "CH", "AT", "RU"]

        def random_address() -> str:
            octets = rng.integers(1, 255, size=4)
            return f"{min(int(octets[0]), 223)}.{octets[1]}.{octets[2]}.{octets[3]}"

        relays = []

        for i in range(num_guards):
            relays.append(RelayRecord(
                fingerprint=f"guard_{i:04d}",
                nickname=f"Guard{i:04d}",
                address=random_address(),
                or_port=9001,
                bandwidth=int(rng.integers(1000, 10000)),
                country_code=str(rng.choice(countries)),
                flags={RelayFlag.GUARD, RelayFlag.FAST, RelayFlag.RUNNING,
                       RelayFlag.VALID, RelayFlag.STABLE},
                exit_policy="reject 1-65535",
            ))

        for i in range(num_middles):
            relays.append(RelayRecord(
                fingerprint=f"middle_{i:04d}",
                nickname=f"Middle{i:04d}",
                address=random_address(),
                or_port=9001,
                bandwidth=int(rng.integers(500, 5000)),
                country_code=str(rng.choice(countries)),
                flags={RelayFlag.FAST, RelayFlag.RUNNING, RelayFlag.VALID},
                exit_policy="reject 1-65535",
            ))

        for i in range(num_exits):
            relays.append(RelayRecord(
                fingerprint=f"exit_{i:04d}",
                nickname=f"Exit{i:04d}",
                address=random_address(),
                or_port=9001,
                bandwidth=int(rng.integers(2000, 20000)),
                country_code=str(rng.choice(countries)),
                flags={RelayFlag.EXIT, RelayFlag.FAST, RelayFlag.RUNNING,
                       RelayFlag.VALID},
                exit_policy="accept 80,443",
            ))

        return cls(relays)

    def to_json(self, filepath: str) -> None:
        """Save relays to a JSON file, keeping registry order."""
        data = {"relays": [relay.to_dict() for relay in self._relays]}

        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_json(cls, filepath: str) -> "RelayStore":
        """Load relays from a JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)

        return cls(RelayRecord.from_dict(item) for item in data["relays"])

    def __len__(self) -> int:
        return len(self._relays)

    def __iter__(self) -> Iterator[RelayRecord]:
        return iter(self._relays)

    def __getitem__(self, fingerprint: str) -> RelayRecord:
        return self._by_fingerprint[fingerprint]

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._by_fingerprint

    def __str__(self) -> str:
        return (f"RelayStore(relays={len(self._relays)}, "
                f"guards={len(self.relays_with_flag(RelayFlag.GUARD))}, "
                f"fast={len(self.relays_with_flag(RelayFlag.FAST))}, "
                f"exits={len(self.relays_with_flag(RelayFlag.EXIT))})")
