"""Tests for config loading and project selection."""

import sys

import pytest

sys.path.insert(0, "scripts")

from collect_metrics import get_output_path, load_config, select_projects


def write_config(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text)
    return path


MINIMAL = """
projects:
  - name: rails
    github: rails/rails
output_dir: metrics
"""


class TestLoadConfig:
    """Test config validation and defaults."""

    def test_defaults(self, tmp_path):
        config = load_config(write_config(tmp_path, MINIMAL))
        assert config["api"] == {}
        assert config["quarters"]["last_year_offset"] == 1
        assert config["projects"][0]["stack_overflow_tag"] == "rails"

    def test_keeps_explicit_values(self, tmp_path):
        text = MINIMAL.replace("github: rails/rails", "github: rails/rails\n    stack_overflow_tag: ruby-on-rails")
        text += "quarters:\n  last_year_offset: 3\n"
        config = load_config(write_config(tmp_path, text))
        assert config["quarters"]["last_year_offset"] == 3
        assert config["projects"][0]["stack_overflow_tag"] == "ruby-on-rails"

    def test_missing_keys(self, tmp_path):
        with pytest.raises(ValueError, match="output_dir"):
            load_config(write_config(tmp_path, "projects: []\n"))

    def test_empty_file(self, tmp_path):
        with pytest.raises(ValueError, match="projects"):
            load_config(write_config(tmp_path, ""))

    def test_bad_github_slug(self, tmp_path):
        with pytest.raises(ValueError, match="org/repo"):
            load_config(write_config(tmp_path, MINIMAL.replace("rails/rails", "rails")))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yml")


class TestSelectProjects:
    """Test --project filtering."""

    def test_all_by_default(self, tmp_path):
        config = load_config(write_config(tmp_path, MINIMAL))
        assert select_projects(config) == config["projects"]

    def test_unknown_project(self, tmp_path):
        config = load_config(write_config(tmp_path, MINIMAL))
        with pytest.raises(ValueError, match="django"):
            select_projects(config, ["django"])

    def test_output_path(self, tmp_path):
        config = load_config(write_config(tmp_path, MINIMAL))
        path = get_output_path("rails", config)
        assert path.name == "rails.json"
        assert path.parent.name == "metrics"
