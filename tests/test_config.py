"""Tests for configuration and component wiring."""

import pytest
from pydantic import ValidationError

from ledger_engine.config import AppSettings, ImportSettings, get_settings
from ledger_engine.orchestrator import ImportFlow, TransactionFlow, create_app_components
from ledger_engine.queries import LedgerQueryExecutor
from ledger_engine.services.storage import InMemoryLedgerStore


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_import_defaults(self):
        """Test default import limits."""
        settings = ImportSettings()
        assert settings.max_upload_size_mb == 10
        assert settings.max_upload_size_bytes == 10 * 1024 * 1024
        assert settings.list_limit_max == 500

    def test_env_override(self, monkeypatch):
        """Test limits come from LEDGER_IMPORT_ variables."""
        monkeypatch.setenv("LEDGER_IMPORT_MAX_UPLOAD_SIZE_MB", "2")
        monkeypatch.setenv("LEDGER_IMPORT_TWO_DIGIT_YEAR_PIVOT", "30")
        settings = ImportSettings()
        assert settings.max_upload_size_bytes == 2 * 1024 * 1024
        assert settings.two_digit_year_pivot == 30

    def test_upload_limit_bounds(self, monkeypatch):
        """Test the upload limit can't exceed 50 MB."""
        monkeypatch.setenv("LEDGER_IMPORT_MAX_UPLOAD_SIZE_MB", "500")
        with pytest.raises(ValidationError):
            ImportSettings()

    def test_unknown_backend_rejected(self, monkeypatch):
        """Test only supported storage backends are accepted."""
        monkeypatch.setenv("STORAGE_BACKEND", "postgres")
        with pytest.raises(ValidationError):
            AppSettings()

    def test_get_settings_cached(self):
        """Test get_settings returns the same root object."""
        assert get_settings() is get_settings()


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_memory_backend(self):
        """Test the in-memory wiring."""
        import_flow, transaction_flow, query_executor, store = create_app_components("memory")

        assert isinstance(import_flow, ImportFlow)
        assert isinstance(transaction_flow, TransactionFlow)
        assert isinstance(query_executor, LedgerQueryExecutor)
        assert isinstance(store, InMemoryLedgerStore)

    def test_unconfigured_sheets_falls_back(self, monkeypatch):
        """Test missing Google Sheets configuration falls back to memory."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        *_, store = create_app_components("google_sheets")
        assert isinstance(store, InMemoryLedgerStore)

    def test_unknown_backend(self):
        """Test an unknown backend name is an error."""
        with pytest.raises(ValueError):
            create_app_components("postgres")
