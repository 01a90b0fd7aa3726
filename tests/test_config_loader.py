"""Unit tests for configuration loading."""
import os
from unittest.mock import patch

import pytest

from config_loader import AppConfig, ConfigLoadError, load_config, parse_config

VALID_YAML = """
title: Family Calendar
refreshInterval: 10
port: 8080
fetchTimeout: 5
sources:
  - id: school
    name: School
    url: https://school.example.com/cal.ics
    color: "#ff9900"
  - id: football
    name: Football Club
    url: https://club.example.com/cal.ics
    enabled: false
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text(VALID_YAML, encoding='utf-8')
    return path


class TestLoadConfig:
    """Test cases for load_config."""

    def test_load_valid_config(self, config_file):
        """Test loading every supported key."""
        config = load_config(config_file)

        assert config.title == 'Family Calendar'
        assert config.refresh_interval == 10
        assert config.port == 8080
        assert config.fetch_timeout == 5
        assert [s.id for s in config.sources] == ['school', 'football']
        assert config.sources[0].color == '#ff9900'
        assert config.sources[0].enabled is True
        assert config.sources[1].enabled is False

    def test_config_path_from_environment(self, config_file):
        with patch.dict(os.environ, {'CONFIG_PATH': str(config_file)}):
            config = load_config()

        assert config.title == 'Family Calendar'

    def test_missing_file(self, tmp_path):
        """Test that a missing file is a load failure."""
        with pytest.raises(ConfigLoadError, match='Cannot read'):
            load_config(tmp_path / 'missing.yaml')

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('sources: [unclosed', encoding='utf-8')

        with pytest.raises(ConfigLoadError, match='Invalid YAML'):
            load_config(path)


class TestParseConfig:
    """Test cases for parse_config validation and defaults."""

    def test_defaults(self):
        """Test default values for optional keys."""
        with patch.dict(os.environ, {}, clear=True):
            config = parse_config({
                'sources': [{'id': 'a', 'name': 'A', 'url': 'https://a.example.com'}]
            })

        assert config.title == 'Calendar'
        assert config.refresh_interval == 15
        assert config.port == 3000
        assert config.fetch_timeout == 30
        assert config.sources[0].color == '#3788d8'
        assert config.sources[0].enabled is True

    def test_port_from_environment(self):
        with patch.dict(os.environ, {'PORT': '4000'}):
            config = parse_config({'sources': []})

        assert config.port == 4000

    def test_config_port_wins_over_environment(self):
        with patch.dict(os.environ, {'PORT': '4000'}):
            config = parse_config({'sources': [], 'port': 5000})

        assert config.port == 5000

    @pytest.mark.parametrize('data', [
        None,
        [],
        {'title': 'No sources'},
        {'sources': 'not-a-list'},
        {'sources': ['just-a-string']},
        {'sources': [{'id': 'a', 'name': 'A'}]},
        {'sources': [{'id': '', 'name': 'A', 'url': 'https://a'}]},
        {'sources': [], 'refreshInterval': -5},
        {'sources': [], 'refreshInterval': 'often'},
        {'sources': [], 'port': 'eighty'},
    ])
    def test_invalid_config_rejected(self, data):
        with pytest.raises(ConfigLoadError):
            parse_config(data)

    def test_duplicate_source_ids_rejected(self):
        """Test that two sources may not share an id."""
        source = {'id': 'a', 'name': 'A', 'url': 'https://a.example.com'}

        with pytest.raises(ConfigLoadError, match='Duplicate'):
            parse_config({'sources': [source, dict(source)]})

    def test_get_source(self):
        config = parse_config({
            'sources': [{'id': 'a', 'name': 'A', 'url': 'https://a.example.com'}]
        })

        assert config.get_source('a').name == 'A'
        assert config.get_source('b') is None
        assert isinstance(config, AppConfig)
