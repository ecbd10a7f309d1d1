"""Tests for configuration defaults, the pass floor, and immutability."""

import logging

import pytest

from launchsign.config import (
    DEFAULT_MAX_PASSES,
    MIN_PASSES,
    ConvergenceConfig,
    SignConfig,
)
from launchsign.core.config import ProcessConfig


def test_process_config_defaults():
    config = ProcessConfig()
    assert config.verbose is False
    assert config.timeout_seconds is None
    assert config.chunk_size == 64 * 1024


def test_process_config_frozen():
    config = ProcessConfig()
    with pytest.raises(AttributeError):
        config.verbose = True


def test_convergence_config_defaults():
    config = ConvergenceConfig()
    assert config.max_passes == DEFAULT_MAX_PASSES == 10
    assert config.in_place is False
    assert config.lenient is False
    assert config.backup is False


def test_convergence_config_custom():
    config = ConvergenceConfig(max_passes=4, lenient=True)
    assert config.max_passes == 4
    assert config.lenient is True


@pytest.mark.parametrize("requested", [-3, 0, 1])
def test_max_passes_floor(requested, caplog):
    with caplog.at_level(logging.WARNING, logger="launchsign.config"):
        config = ConvergenceConfig(max_passes=requested)
    assert config.max_passes == MIN_PASSES == 2
    assert "below the minimum" in caplog.text


def test_convergence_config_frozen():
    config = ConvergenceConfig()
    with pytest.raises(AttributeError):
        config.max_passes = 3


def test_sign_config_composes_defaults():
    config = SignConfig()
    assert config.convergence == ConvergenceConfig()
    assert config.process == ProcessConfig()
    assert config.verbose is False


def test_sign_config_verbose_from_process():
    assert SignConfig(process=ProcessConfig(verbose=True)).verbose is True
