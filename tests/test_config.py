#!/usr/bin/env python3
"""
Test suite for anime_multisource/config.py and overrides.py - YAML configuration
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from anime_multisource.config import (
    PluginConfig, load_config, DataSource, TitleField, RuntimeSource, SeasonTitleFormat,
)
from anime_multisource.constants import DEFAULT_APPROVED_GENRES, SPECIAL_RELATION_SCORES
from anime_multisource.errors import ConfigurationInvalid
from anime_multisource.overrides import GraphOverrides, load_overrides


class TestPluginConfig:
    """Mapping raw YAML values onto the dataclass"""

    def test_defaults(self):
        config = load_config(None)
        assert config.title_field == TitleField.TITLE
        assert config.title_data_source == DataSource.EITHER
        assert config.anilist_max_per_minute == 30
        assert config.approved_genres == DEFAULT_APPROVED_GENRES

    def test_enum_values_case_insensitive(self):
        config = PluginConfig.from_dict({'title_field': 'Title_English', 'runtime_data_source': 'JIKAN'})
        assert config.title_field == TitleField.TITLE_ENGLISH
        assert config.runtime_data_source == RuntimeSource.JIKAN

    def test_unknown_enum_rejected(self):
        with pytest.raises(ConfigurationInvalid):
            PluginConfig.from_dict({'title_data_source': 'crunchyroll'})

    def test_catalog_alias_maps_to_either(self):
        assert PluginConfig.from_dict({'title_data_source': 'anidb'}).title_data_source == DataSource.EITHER

    def test_genres_from_multiline_string(self):
        config = PluginConfig.from_dict({'approved_genres': "Action\n\n Mecha \n"})
        assert config.approved_genres == ['Action', 'Mecha']

    def test_numbers_validated(self):
        with pytest.raises(ConfigurationInvalid):
            PluginConfig.from_dict({'max_backdrops': 'lots'})
        with pytest.raises(ConfigurationInvalid):
            PluginConfig.from_dict({'anilist_max_per_minute': 0})

    def test_quoted_false_disables_tags(self):
        assert PluginConfig.from_dict({'enable_anidb_tags': 'false'}).enable_anidb_tags is False
        assert PluginConfig.from_dict({'enable_anidb_tags': 'No'}).enable_anidb_tags is False
        assert PluginConfig.from_dict({'enable_anidb_tags': 'yes'}).enable_anidb_tags is True
        assert PluginConfig.from_dict({'enable_anidb_tags': False}).enable_anidb_tags is False

    def test_unrecognised_boolean_rejected(self):
        with pytest.raises(ConfigurationInvalid):
            PluginConfig.from_dict({'enable_anidb_tags': 'sometimes'})

    def test_unknown_key_ignored(self):
        config = PluginConfig.from_dict({'favourite_colour': 'blue'})
        assert config == PluginConfig()

    def test_non_mapping_rejected(self):
        with pytest.raises(ConfigurationInvalid):
            PluginConfig.from_dict(['title_field'])


class TestLoadConfig:
    """YAML file loading"""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("season_title_format: numbered\ntvdb_api_key: abc\ndata_dir: ./cache\n")
        config = load_config(path)
        assert config.season_title_format == SeasonTitleFormat.NUMBERED
        assert config.tvdb_api_key == 'abc'
        assert config.data_dir == Path('./cache')

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationInvalid):
            load_config(tmp_path / 'nope.yaml')

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("title_field: [unclosed\n")
        with pytest.raises(ConfigurationInvalid):
            load_config(path)

    def test_example_config_loads(self):
        example = Path(__file__).parent.parent / 'config_example.yaml'
        config = load_config(example)
        assert config.max_backdrops == 5


class TestOverrides:
    """Graph override tables"""

    def test_defaults(self):
        overrides = load_overrides(None)
        assert overrides.is_pinned(21)
        assert overrides.special_relation_scores == SPECIAL_RELATION_SCORES

    def test_deferred_season_threshold(self):
        overrides = GraphOverrides(deferred_seasons={21: 2})
        assert not overrides.should_defer_season(21, 1)
        assert overrides.should_defer_season(21, 2)
        assert overrides.should_defer_season(21, 5)
        assert not overrides.should_defer_season(99, 5)

    def test_from_yaml(self, tmp_path):
        path = tmp_path / 'overrides.yaml'
        path.write_text(
            "pinned_root_ids: [1, 2]\n"
            "deferred_seasons:\n  1: 3\n"
            "special_relation_scores:\n  SEQUEL+OVA: 9\n"
            "year_delta_weight: 4\n"
        )
        overrides = load_overrides(path)
        assert overrides.pinned_root_ids == frozenset({1, 2})
        assert overrides.deferred_seasons == {1: 3}
        assert overrides.special_relation_scores == {('SEQUEL', 'OVA'): 9}
        assert overrides.year_delta_weight == 4

    def test_bad_pair_key(self, tmp_path):
        path = tmp_path / 'overrides.yaml'
        path.write_text("special_relation_scores:\n  SEQUEL: 9\n")
        with pytest.raises(ConfigurationInvalid):
            load_overrides(path)

    def test_example_overrides_load(self):
        example = Path(__file__).parent.parent / 'overrides_example.yaml'
        overrides = load_overrides(example)
        assert overrides.deferred_seasons == {21: 2}
