"""
test_config.py
~~~~~~~~~~~~~~

Unit tests for environment-driven settings.
"""

import logging

import pytest

from dense_nn import config


@pytest.mark.unit
class TestConfig:
    """Test model directory and logging setup."""

    def test_default_model_dir(self, monkeypatch):
        """Test the default when MODEL_DIR is unset."""
        monkeypatch.delenv('MODEL_DIR', raising=False)
        assert config.get_model_dir() == 'trained_models'

    def test_model_dir_from_env(self, monkeypatch):
        """Test that MODEL_DIR overrides the default."""
        monkeypatch.setenv('MODEL_DIR', '/tmp/models')
        assert config.get_model_dir() == '/tmp/models'

    def test_configure_logging_level(self, monkeypatch):
        """Test that LOG_LEVEL sets the package logger level once."""
        monkeypatch.setattr(config, '_logging_configured', False)
        monkeypatch.setenv('LOG_LEVEL', 'debug')
        config.configure_logging()
        assert logging.getLogger('dense_nn').level == logging.DEBUG

        monkeypatch.setenv('LOG_LEVEL', 'ERROR')
        config.configure_logging()
        assert logging.getLogger('dense_nn').level == logging.DEBUG
