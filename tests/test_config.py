#!/usr/bin/env python3
"""Tests for config.py - operator settings.

Tests verify:
1. Defaults, including manifest discovery via KO_DATA_PATH
2. YAML file loading and validation
3. Environment overrides
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from config import (
    CONFIG_ENV,
    KO_DATA_ENV,
    RECURSIVE_ENV,
    VERSION_ENV,
    ConfigError,
    OperatorConfig,
    get_base_dir,
    get_ko_data_dir,
    load_operator_config,
    _parse_bool,
    _parse_yaml,
)
from version import VERSION


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove operator env vars inherited from the shell."""
    for name in (CONFIG_ENV, RECURSIVE_ENV, VERSION_ENV, KO_DATA_ENV):
        monkeypatch.delenv(name, raising=False)


class TestGetKoDataDir:
    """Test bundled manifest discovery."""

    def test_env_var_takes_precedence(self, tmp_path):
        with patch.dict(os.environ, {'KO_DATA_PATH': str(tmp_path)}):
            assert get_ko_data_dir() == tmp_path

    def test_defaults_to_repo_kodata(self):
        assert get_ko_data_dir() == get_base_dir() / 'kodata'


class TestOperatorConfig:
    """Test OperatorConfig dataclass."""

    def test_defaults(self, tmp_path):
        with patch.dict(os.environ, {'KO_DATA_PATH': str(tmp_path)}):
            config = OperatorConfig()
        assert config.manifest_path == tmp_path / 'knative-serving'
        assert config.recursive is False
        assert config.version == VERSION
        assert config.status_update_retries == 3
        assert config.requeue_interval == 30.0
        assert config.kubeconfig is None

    def test_string_path_converted(self):
        config = OperatorConfig(manifest_path='/tmp/manifests')
        assert config.manifest_path == Path('/tmp/manifests')

    def test_invalid_retries(self):
        with pytest.raises(ConfigError) as exc_info:
            OperatorConfig(status_update_retries=0)
        assert 'status_update_retries' in str(exc_info.value)

    def test_negative_interval(self):
        with pytest.raises(ConfigError):
            OperatorConfig(requeue_interval=-1)

    def test_from_dict(self):
        config = OperatorConfig.from_dict({
            'manifest_path': '/data/serving',
            'recursive': 'yes',
            'version': 'v1.2.3',
            'status_update_retries': '5',
            'requeue_interval': 10,
            'context': 'kind-test',
        })
        assert config.manifest_path == Path('/data/serving')
        assert config.recursive is True
        assert config.version == 'v1.2.3'
        assert config.status_update_retries == 5
        assert config.requeue_interval == 10.0
        assert config.context == 'kind-test'
        assert config.kubeconfig is None

    def test_from_dict_unknown_key(self):
        with pytest.raises(ConfigError) as exc_info:
            OperatorConfig.from_dict({'manifest': '/x', 'retries': 2})
        assert 'manifest, retries' in str(exc_info.value)

    def test_from_dict_bad_int(self):
        with pytest.raises(ConfigError):
            OperatorConfig.from_dict({'status_update_retries': 'many'})

    def test_from_dict_bool_is_not_int(self):
        with pytest.raises(ConfigError):
            OperatorConfig.from_dict({'status_update_retries': True})

    def test_to_dict(self):
        config = OperatorConfig(manifest_path=Path('/m'), version='v1')
        d = config.to_dict()
        assert d['manifest_path'] == '/m'
        assert d['version'] == 'v1'
        assert d['status_update_retries'] == 3


class TestParsing:
    """Test YAML and scalar parsing helpers."""

    def test_parse_yaml(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("recursive: true\n")
        assert _parse_yaml(path) == {'recursive': True}

    def test_parse_yaml_empty(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("")
        assert _parse_yaml(path) == {}

    def test_parse_yaml_invalid(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("recursive: [unclosed\n")
        with pytest.raises(ConfigError) as exc_info:
            _parse_yaml(path)
        assert 'Invalid YAML' in str(exc_info.value)

    def test_parse_yaml_not_mapping(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            _parse_yaml(path)

    @pytest.mark.parametrize('value,expected', [
        (True, True), ('1', True), ('TRUE', True), ('on', True),
        (False, False), ('0', False), ('no', False), ('', False),
    ])
    def test_parse_bool(self, value, expected):
        assert _parse_bool(value, 'flag') is expected

    def test_parse_bool_invalid(self):
        with pytest.raises(ConfigError):
            _parse_bool('maybe', 'flag')


class TestLoadOperatorConfig:
    """Test load_operator_config file and env handling."""

    def test_no_file(self):
        config = load_operator_config()
        assert config.version == VERSION

    def test_explicit_path(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("version: v1.2.3\nrequeue_interval: 5\n")
        config = load_operator_config(str(path))
        assert config.version == 'v1.2.3'
        assert config.requeue_interval == 5.0

    def test_env_path(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("recursive: true\n")
        with patch.dict(os.environ, {CONFIG_ENV: str(path)}):
            config = load_operator_config()
        assert config.recursive is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_operator_config(str(tmp_path / 'missing.yaml'))
        assert 'not found' in str(exc_info.value)

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("recursive: true\nversion: v1.0.0\n")
        with patch.dict(os.environ, {RECURSIVE_ENV: 'false', VERSION_ENV: 'v2.0.0'}):
            config = load_operator_config(str(path))
        assert config.recursive is False
        assert config.version == 'v2.0.0'

    def test_ko_data_path_overrides_file(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("manifest_path: /etc/serving/manifests\n")
        with patch.dict(os.environ, {KO_DATA_ENV: str(tmp_path / 'kodata')}):
            config = load_operator_config(str(path))
        assert config.manifest_path == tmp_path / 'kodata' / 'knative-serving'

    def test_file_manifest_path_without_ko_data_path(self, tmp_path):
        path = tmp_path / 'operator.yaml'
        path.write_text("manifest_path: /etc/serving/manifests\n")
        config = load_operator_config(str(path))
        assert config.manifest_path == Path('/etc/serving/manifests')
