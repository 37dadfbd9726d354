"""
Tests for configuration loading and validation
"""

import logging

import pytest

from ayurflow.base.config import (
    OrchestratorConfig,
    SynthesisConfig,
    WorkerConfig,
    load_config,
    setup_logging,
)
from ayurflow.core.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        'AYURFLOW_MAX_CONCURRENT_TASKS',
        'AYURFLOW_SHUTDOWN_GRACE',
        'AYURFLOW_TEMPLATES',
        'AYURFLOW_PERSISTENCE',
        'AYURFLOW_DB_PATH',
        'AYURFLOW_LOG_LEVEL',
    ):
        monkeypatch.delenv(name, raising=False)


class TestOrchestratorConfig:
    """Test defaults, environment overrides and validation"""

    def test_defaults(self):
        config = OrchestratorConfig()

        assert config.max_concurrent_tasks == 10
        assert config.shutdown_grace_period == 30.0
        assert config.persistence == "memory"
        assert config.templates_path is None
        assert config.validate() is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv('AYURFLOW_MAX_CONCURRENT_TASKS', '4')
        monkeypatch.setenv('AYURFLOW_PERSISTENCE', 'sqlite')
        monkeypatch.setenv('AYURFLOW_DB_PATH', '/tmp/ayurflow-test.db')
        monkeypatch.setenv('AYURFLOW_LOG_LEVEL', 'DEBUG')

        config = OrchestratorConfig(max_concurrent_tasks=8)

        assert config.max_concurrent_tasks == 4
        assert config.persistence == 'sqlite'
        assert config.db_path == '/tmp/ayurflow-test.db'
        assert config.log_level == 'DEBUG'

    def test_nested_sections_from_dicts(self):
        config = OrchestratorConfig(
            workers={'literature': {'timeout_ms': 1000}, 'compound': None},
            synthesis={'max_findings': 3},
        )

        assert isinstance(config.workers['literature'], WorkerConfig)
        assert config.worker_overrides('literature') == {'timeout_ms': 1000}
        assert config.worker_overrides('compound') == {}
        assert config.worker_overrides('crossref') == {}
        assert config.synthesis.max_findings == 3

    @pytest.mark.parametrize("overrides", [
        {'max_concurrent_tasks': 0},
        {'shutdown_grace_period': -1},
        {'persistence': 'redis'},
        {'log_level': 'LOUD'},
        {'workers': {'literature': {'timeout_ms': 0}}},
        {'workers': {'literature': {'retry_attempts': -1}}},
        {'synthesis': {'conflict_penalty': 2.0}},
        {'synthesis': {'max_findings': 0}},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(**overrides).validate()

    def test_dict_round_trip(self):
        config = OrchestratorConfig(max_concurrent_tasks=3, workers={'crossref': {'retry_attempts': 1}})
        data = config.to_dict()

        assert data['workers'] == {'crossref': {'retry_attempts': 1}}
        assert data['synthesis']['conflict_threshold'] == 1.0
        assert OrchestratorConfig.from_dict(data).to_dict() == data

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(ConfigurationError):
            OrchestratorConfig.from_dict({'max_tasks': 3})

    def test_bad_nested_keys_are_rejected(self):
        with pytest.raises(ConfigurationError):
            OrchestratorConfig.from_dict({'synthesis': {'threshold': 1}})


class TestLoadConfig:
    """Test YAML configuration files"""

    def test_load_from_file(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text(
            "max_concurrent_tasks: 3\n"
            "persistence: sqlite\n"
            "db_path: tasks.db\n"
            "workers:\n"
            "  literature:\n"
            "    timeout_ms: 60000\n"
            "synthesis:\n"
            "  conflict_penalty: 0.2\n"
        )

        config = load_config(str(path))

        assert config.max_concurrent_tasks == 3
        assert config.persistence == 'sqlite'
        assert config.worker_overrides('literature') == {'timeout_ms': 60000}
        assert config.synthesis.conflict_penalty == 0.2

    def test_empty_file_gives_defaults(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("")
        assert load_config(str(path)).max_concurrent_tasks == 10

    def test_missing_explicit_file(self, temp_dir):
        with pytest.raises(ConfigurationError):
            load_config(str(temp_dir / "nope.yaml"))

    def test_missing_default_file(self, monkeypatch, temp_dir):
        monkeypatch.setattr('ayurflow.base.config.DEFAULT_CONFIG_PATH', temp_dir / "absent.yaml")
        assert load_config().max_concurrent_tasks == 10

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("workers: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_non_mapping(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))


class TestSetupLogging:
    def test_debug_level_enables_package_logger(self):
        package_logger = logging.getLogger('ayurflow')
        previous = package_logger.level
        try:
            setup_logging(OrchestratorConfig(log_level='DEBUG'))
            assert package_logger.level == logging.DEBUG
        finally:
            package_logger.setLevel(previous)


class TestSynthesisConfig:
    def test_defaults_are_valid(self):
        assert SynthesisConfig().validate() is True
