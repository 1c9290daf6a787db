"""Tests for company resolution."""

import tempfile
from pathlib import Path

import pytest
import requests
import yaml

from conftest import make_response, make_session
from marketstep.company_resolver import CompanyRegistry
from marketstep.config import DEFAULT_COMPANIES_YAML
from marketstep.errors import InvalidUpstreamResponse, UpstreamError, UpstreamUnavailable


@pytest.fixture
def registry():
    """Small registry with the NVDA double-CIK case."""
    return CompanyRegistry([
        {"ticker": "NVDAX", "name": "Nvda Holdings Index", "cik": "1111111"},
        {"ticker": "NVDA", "name": "NVIDIA Corporation", "cik": "0001045810"},
        {"ticker": "NVDA", "name": "NVIDIA Corp (legacy)", "cik": "0000200406"},
        {"ticker": "AAPL", "name": "Apple Inc.", "cik": "0000320193"},
        {"ticker": "MSFT", "name": "Microsoft Corporation", "cik": "0000789019"},
    ])


class TestCompanyRegistry:
    """Test CompanyRegistry construction and lookup."""

    def test_rows_sharing_ticker_fold_into_one_identity(self, registry):
        """Test that the second NVDA CIK is kept as an alias."""
        nvda = registry.get("NVDA")
        assert nvda.registry_id == "0001045810"
        assert nvda.registry_aliases == ("0000200406",)
        assert nvda.name_aliases == ("NVIDIA Corp (legacy)",)
        assert len(registry) == 4

    def test_resolve_exact_ticker_first(self, registry):
        """Test that the exact ticker match precedes other matches."""
        results = registry.resolve("NVDA")
        assert [r.ticker for r in results] == ["NVDA", "NVDAX"]

    def test_resolve_is_case_insensitive(self, registry):
        """Test lowercase queries."""
        assert [r.ticker for r in registry.resolve("nvda")] == ["NVDA", "NVDAX"]

    def test_resolve_by_name_fragment(self, registry):
        """Test matching on part of the company name."""
        results = registry.resolve("corporation")
        assert [r.ticker for r in results] == ["NVDA", "MSFT"]

    def test_resolve_by_name_alias(self, registry):
        """Test that alternate names are searched too."""
        assert [r.ticker for r in registry.resolve("legacy")] == ["NVDA"]

    def test_resolve_no_match_returns_empty(self, registry):
        """Test that no match is an empty result, not an error."""
        assert registry.resolve("ZZZZ") == []

    def test_resolve_blank_query_returns_empty(self, registry):
        """Test blank queries."""
        assert registry.resolve("") == []
        assert registry.resolve("   ") == []

    def test_get_unknown_ticker(self, registry):
        """Test that get returns None for missing tickers."""
        assert registry.get("GOOGL") is None
        assert registry.get("aapl").ticker == "AAPL"

    def test_tickers_sorted(self, registry):
        """Test listing tickers."""
        assert registry.tickers() == ["AAPL", "MSFT", "NVDA", "NVDAX"]

    def test_missing_key_raises_error(self):
        """Test that rows without a cik are rejected."""
        with pytest.raises(ValueError, match="missing"):
            CompanyRegistry([{"ticker": "AAPL", "name": "Apple Inc."}])


class TestRegistryFromYaml:
    """Test loading the registry from YAML."""

    def test_load_from_yaml(self):
        """Test loading companies from a YAML file."""
        config = {
            "companies": [
                {"ticker": "AAPL", "name": "Apple Inc.", "cik": "320193"},
                {"ticker": "MSFT", "name": "Microsoft Corporation", "cik": "789019"},
            ]
        }
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config, f)
            config_path = Path(f.name)

        try:
            registry = CompanyRegistry.from_yaml(config_path)
            assert registry.tickers() == ["AAPL", "MSFT"]
            assert registry.get("AAPL").registry_id == "0000320193"
        finally:
            config_path.unlink()

    def test_missing_file_raises_error(self):
        """Test that a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            CompanyRegistry.from_yaml(Path("/nonexistent/companies.yaml"))

    def test_missing_companies_list_raises_error(self):
        """Test that YAML without a companies list is rejected."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({"other": []}, f)
            config_path = Path(f.name)

        try:
            with pytest.raises(ValueError, match="missing 'companies' list"):
                CompanyRegistry.from_yaml(config_path)
        finally:
            config_path.unlink()

    def test_bundled_table_loads(self):
        """Test that the shipped company table is valid."""
        registry = CompanyRegistry.from_yaml(DEFAULT_COMPANIES_YAML)
        nvda = registry.get("NVDA")
        assert nvda is not None
        assert nvda.all_registry_ids == ("0001045810", "0000200406")
        assert registry.resolve("NVDA")[0].ticker == "NVDA"


class TestRegistryFromSecDirectory:
    """Test loading the registry from the SEC ticker directory."""

    def test_load_directory(self):
        """Test parsing company_tickers.json and skipping share classes."""
        payload = {
            "0": {"cik_str": 320193, "ticker": "AAPL", "title": "Apple Inc."},
            "1": {"cik_str": 1067983, "ticker": "BRK-B", "title": "Berkshire Hathaway"},
            "2": {"cik_str": 789019, "ticker": "MSFT", "title": "MICROSOFT CORP"},
        }
        session = make_session(make_response(200, payload))

        registry = CompanyRegistry.from_sec_directory(session=session)

        assert registry.tickers() == ["AAPL", "MSFT"]
        assert registry.get("MSFT").registry_id == "0000789019"

    def test_entries_without_cik_skipped(self):
        """Test that directory rows with a blank CIK are dropped."""
        payload = {
            "0": {"cik_str": 320193, "ticker": "AAPL", "title": "Apple Inc."},
            "1": {"cik_str": "", "ticker": "GHOST", "title": "Ghost Corp"},
            "2": {"ticker": "NOCIK", "title": "No CIK Inc."},
        }
        session = make_session(make_response(200, payload))

        registry = CompanyRegistry.from_sec_directory(session=session)

        assert registry.tickers() == ["AAPL"]

    def test_connection_failure(self):
        """Test that transport errors map to UpstreamUnavailable."""
        session = make_session()
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(UpstreamUnavailable):
            CompanyRegistry.from_sec_directory(session=session)

    def test_error_status(self):
        """Test that non-2xx maps to UpstreamError."""
        session = make_session(make_response(403, text="Forbidden"))

        with pytest.raises(UpstreamError) as exc_info:
            CompanyRegistry.from_sec_directory(session=session)
        assert exc_info.value.status_code == 403

    def test_non_mapping_payload(self):
        """Test that a list payload is rejected."""
        session = make_session(make_response(200, []))

        with pytest.raises(InvalidUpstreamResponse):
            CompanyRegistry.from_sec_directory(session=session)
