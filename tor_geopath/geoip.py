"""
IP to country resolution used to fill in relay countries lazily.

A resolver is any callable taking an IP address string and returning a
two-letter country code, or "XX" when the address cannot be placed.
"""

from typing import Callable, Dict, Optional
import logging

import pandas as pd

from .network import UNKNOWN_COUNTRY


logger = logging.getLogger(__name__)

CountryResolver = Callable[[str], str]


def unresolved_country(ip: str) -> str:
    """Resolver that knows nothing."""
    return UNKNOWN_COUNTRY


class StaticCountryResolver:
    """Looks addresses up in a fixed ip -> country table."""

    def __init__(self, table: Optional[Dict[str, str]] = None):
        self.table = {ip: code.strip().upper() for ip, code in (table or {}).items()}

    @classmethod
    def from_csv(cls, path: str, ip_column: str = "ip",
                 country_column: str = "country") -> "StaticCountryResolver":
        """Load a table with one row per address."""
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        missing = {ip_column, country_column} - set(df.columns)
        if missing:
            raise ValueError(f"{path} is missing columns: {sorted(missing)}")
        table = dict(zip(df[ip_column].str.strip(), df[country_column]))
        logger.info("Loaded %d country mappings from %s", len(table), path)
        return cls(table)

    def __call__(self, ip: str) -> str:
        return self.table.get(ip) or UNKNOWN_COUNTRY

    def __len__(self) -> int:
        return len(self.table)


class CachingCountryResolver:
    """Remembers every answer of a slower resolver, failures included."""

    def __init__(self, resolver: CountryResolver):
        self.resolver = resolver
        self._cache: Dict[str, str] = {}
        self.hits = 0
        self.misses = 0

    def __call__(self, ip: str) -> str:
        if not ip:
            return UNKNOWN_COUNTRY
        if ip in self._cache:
            self.hits += 1
            return self._cache[ip]

        self.misses += 1
        country = self.resolver(ip) or UNKNOWN_COUNTRY
        logger.debug("Resolved %s -> %s", ip, country)
        self._cache[ip] = country
        return country

    def cache_info(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "size": len(self._cache)}

    def clear(self) -> None:
        self._cache.clear()
        self.hits = 0
        self.misses = 0
