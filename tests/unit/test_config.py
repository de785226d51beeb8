"""
Unit tests for configuration.

Tests cover:
- Environment variable loading
- Validation
- Logging setup
"""

import logging

import json_log_formatter
import pytest
from pydantic import ValidationError

from datastore_sdk import DatastoreOptions, RetryParams, setup_logging
from datastore_sdk.config import DEFAULT_HOST


class TestDatastoreOptions:
    """Tests for DatastoreOptions."""

    def test_defaults(self):
        """Only the dataset is required."""
        options = DatastoreOptions(dataset="d")
        assert options.namespace is None
        assert options.host == DEFAULT_HOST
        assert options.retry == RetryParams()
        assert options.log_format == "text"

    def test_from_environment(self, monkeypatch):
        """Settings load from DATASTORE_ variables, nested with __."""
        monkeypatch.setenv("DATASTORE_DATASET", "env-dataset")
        monkeypatch.setenv("DATASTORE_NAMESPACE", "ns")
        monkeypatch.setenv("DATASTORE_RETRY__MAX_ATTEMPTS", "7")

        options = DatastoreOptions()

        assert options.dataset == "env-dataset"
        assert options.namespace == "ns"
        assert options.retry.max_attempts == 7

    def test_dataset_required(self, monkeypatch):
        """Missing dataset fails validation."""
        monkeypatch.delenv("DATASTORE_DATASET", raising=False)
        with pytest.raises(ValidationError):
            DatastoreOptions()

    def test_empty_dataset_rejected(self):
        """Empty dataset fails validation."""
        with pytest.raises(ValidationError, match="dataset cannot be empty"):
            DatastoreOptions(dataset="")

    def test_bad_log_format_rejected(self):
        """Unknown log formats fail validation."""
        with pytest.raises(ValidationError, match="log_format"):
            DatastoreOptions(dataset="d", log_format="xml")

    def test_frozen(self):
        """Options are immutable; model_copy derives variants."""
        options = DatastoreOptions(dataset="d")
        with pytest.raises(ValidationError):
            options.dataset = "other"
        assert options.model_copy(update={"namespace": "ns"}).namespace == "ns"

    def test_credentials_hidden_from_repr(self):
        """Credential paths are not shown in repr."""
        options = DatastoreOptions(dataset="d", credentials_file="/secret/key.json")
        assert "/secret/key.json" not in repr(options)

    def test_retry_bounds(self):
        """Retry parameters are range checked."""
        with pytest.raises(ValidationError):
            RetryParams(max_attempts=0)


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_text_logging(self):
        """Text format uses a plain formatter."""
        setup_logging(DatastoreOptions(dataset="d", log_level="debug"))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_json_logging(self):
        """JSON format uses json_log_formatter."""
        setup_logging(DatastoreOptions(dataset="d", log_format="json"))
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
