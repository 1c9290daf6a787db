"""Company lookup by ticker, name fragment or registry id."""

import logging
from pathlib import Path
from typing import Iterable, Optional

import requests
import yaml

from marketstep.config import _get_default_user_agent
from marketstep.entities import CompanyIdentity
from marketstep.errors import UpstreamError, UpstreamUnavailable, InvalidUpstreamResponse

logger = logging.getLogger(__name__)

SEC_COMPANY_TICKERS_URL = "https://www.sec.gov/files/company_tickers.json"


class CompanyRegistry:
    """
    Static table of known companies with case-insensitive search.

    Rows sharing a ticker are folded into one CompanyIdentity: the first
    row supplies the canonical name and primary registry id, later rows
    are kept as aliases.

    Representation Invariants:
    - _identities holds one entry per ticker, in first-seen table order
    """

    def __init__(self, records: Iterable[dict]) -> None:
        """
        Build a registry from row dicts.

        Each row needs 'ticker', 'name' and 'cik' keys.

        Raises:
            ValueError: If a row is missing a key or violates identity invariants
        """
        grouped: dict[str, dict] = {}
        for row in records:
            try:
                ticker = str(row["ticker"]).upper().strip()
                name = str(row["name"])
                cik = str(row["cik"])
            except KeyError as e:
                raise ValueError(f"Invalid company entry {row!r}: missing {e}") from e

            if ticker not in grouped:
                grouped[ticker] = {"name": name, "ciks": [cik], "names": []}
            else:
                grouped[ticker]["ciks"].append(cik)
                grouped[ticker]["names"].append(name)

        self._identities: list[CompanyIdentity] = []
        for ticker, info in grouped.items():
            try:
                identity = CompanyIdentity(
                    canonical_name=info["name"],
                    ticker=ticker,
                    registry_id=info["ciks"][0],
                    registry_aliases=tuple(info["ciks"][1:]),
                    name_aliases=tuple(info["names"]),
                )
            except ValueError as e:
                raise ValueError(f"Invalid company entry for {ticker}: {e}") from e
            if identity.registry_aliases:
                logger.info(
                    "%s maps to %d registry ids; keeping aliases %s",
                    identity.ticker,
                    len(identity.all_registry_ids),
                    identity.registry_aliases,
                )
            self._identities.append(identity)

    @classmethod
    def from_yaml(cls, config_path: Path) -> "CompanyRegistry":
        """
        Load the registry from a YAML file with a 'companies' list.

        Raises:
            FileNotFoundError: If config_path doesn't exist
            ValueError: If the YAML is missing the 'companies' list
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Company config not found: {config_path}")

        with open(config_path, "r") as f:
            data = yaml.safe_load(f)

        if not data or not isinstance(data.get("companies"), list):
            raise ValueError(f"Invalid config format: missing 'companies' list in {config_path}")

        return cls(data["companies"])

    @classmethod
    def from_sec_directory(
        cls,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> "CompanyRegistry":
        """
        Load the registry from the SEC company_tickers.json directory.

        Args:
            session: Optional HTTP session (a default one is built otherwise)
            timeout: Request timeout in seconds

        Raises:
            UpstreamUnavailable: If the SEC host can't be reached
            UpstreamError: On non-success HTTP status
            InvalidUpstreamResponse: If the payload isn't the expected mapping
        """
        if session is None:
            session = requests.Session()
            session.headers.update({
                "User-Agent": _get_default_user_agent(),
                "Accept": "application/json",
            })

        try:
            response = session.get(SEC_COMPANY_TICKERS_URL, timeout=timeout)
        except requests.RequestException as e:
            raise UpstreamUnavailable("sec", str(e)) from e

        if not response.ok:
            raise UpstreamError("sec", response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidUpstreamResponse("sec", "company directory is not JSON") from e

        # Format: {"0": {"cik_str": ..., "ticker": ..., "title": ...}, ...}
        if not isinstance(data, dict):
            raise InvalidUpstreamResponse("sec", "company directory is not a mapping")

        records = []
        for entry in data.values():
            ticker = str(entry.get("ticker", ""))
            if not ticker.isalnum():
                continue  # share classes like BRK-B
            if not str(entry.get("cik_str", "")).strip():
                continue
            records.append({
                "ticker": ticker,
                "name": entry.get("title") or f"{ticker.upper()} Corp",
                "cik": str(entry.get("cik_str", "")),
            })
        return cls(records)

    def resolve(self, query: str) -> list[CompanyIdentity]:
        """
        Find companies matching a free-text query.

        A company matches when the query is a substring of its name (or an
        alternate name) or equals / is a substring of its ticker. Exact
        ticker matches come first, then the remaining matches, both in
        table order.

        Args:
            query: Ticker or name fragment, any case

        Returns:
            Matching identities; empty when nothing matches
        """
        if not query or not query.strip():
            return []

        needle = query.strip().lower()
        exact = []
        partial = []

        for identity in self._identities:
            ticker = identity.ticker.lower()
            if ticker == needle:
                exact.append(identity)
            elif needle in ticker or any(needle in name.lower() for name in identity.all_names):
                partial.append(identity)

        return exact + partial

    def get(self, ticker: str) -> Optional[CompanyIdentity]:
        """Get company by ticker (returns None if not found)."""
        wanted = (ticker or "").upper().strip()
        for identity in self._identities:
            if identity.ticker == wanted:
                return identity
        return None

    def tickers(self) -> list[str]:
        """Sorted list of every ticker in the registry."""
        return sorted(identity.ticker for identity in self._identities)

    def __len__(self) -> int:
        return len(self._identities)
