import logging
from datetime import timedelta

import pytest
import yaml

from collection_sync.domain.errors import ConfigError
from collection_sync.infrastructure.config_reader import (
    load_config_file,
    read_integrations,
    read_schedule,
    read_source_configs,
)

log = logging.getLogger("tests.config")

CONFIG = yaml.safe_load("""
integrations:
  github:
    - host: github.com
      token: gh-public
    - host: ghe.example.com
      token: gh-enterprise
  gitlab:
    - token: gl-token
collection_sync:
  environments:
    production:
      schedule:
        frequency: {minutes: 30}
        timeout: {minutes: 10}
      providers:
        github:
          - name: github-public
            orgs:
              - name: ansible-collections
                branches: [main, devel]
                tags: ["v*"]
                galaxy_file_paths: [collections]
                crawl_depth: 3
              - name: quiet
                enabled: false
          - name: enterprise
            host: ghe.example.com
            schedule:
              frequency: {hours: 2}
              timeout: 600
              initial_delay: {seconds: 15}
            orgs:
              - name: platform
                schedule:
                  frequency: {hours: 6}
                  timeout: {hours: 1}
              - name: infra
        gitlab:
          - name: gitlab-public
            orgs:
              - name: my-group/sub
""")


def by_org(sources):
    return {s.organization: s for s in sources}


def test_reads_every_organization():
    sources = by_org(read_source_configs(CONFIG, log))

    assert sorted(sources) == ["ansible-collections", "infra", "my-group/sub", "platform", "quiet"]
    src = sources["ansible-collections"]
    assert (src.env, src.provider, src.host_name, src.host) == ("production", "github", "github-public", "github.com")
    assert src.branches == ("main", "devel")
    assert src.tag_patterns == ("v*",)
    assert src.path_filters == ("collections",)
    assert src.crawl_depth == 3


def test_defaults():
    src = by_org(read_source_configs(CONFIG, log))["my-group/sub"]

    assert src.host == "gitlab.com"
    assert src.enabled is True
    assert src.crawl_depth == 5
    assert src.branches == ()
    assert by_org(read_source_configs(CONFIG, log))["quiet"].enabled is False


def test_schedule_inheritance():
    sources = by_org(read_source_configs(CONFIG, log))

    assert sources["ansible-collections"].schedule.frequency == timedelta(minutes=30)
    assert sources["infra"].schedule.frequency == timedelta(hours=2)
    assert sources["infra"].schedule.timeout == timedelta(seconds=600)
    assert sources["infra"].schedule.initial_delay == timedelta(seconds=15)
    assert sources["platform"].schedule.frequency == timedelta(hours=6)


def test_missing_schedule_skips_only_that_organization(caplog):
    config = {"collection_sync": {"environments": {"dev": {"providers": {"github": [{
        "name":  "gh",
        "orgs":  [
            {"name": "no-schedule"},
            {"name": "has-schedule", "schedule": {"frequency": {"minutes": 5}, "timeout": {"minutes": 1}}},
        ],
    }]}}}}}

    with caplog.at_level(logging.ERROR, logger="tests.config"):
        sources = read_source_configs(config, log)

    assert [s.organization for s in sources] == ["has-schedule"]
    assert "No schedule for organization no-schedule" in caplog.text


def test_non_positive_crawl_depth_skips_the_organization(caplog):
    config = {"collection_sync": {"environments": {"dev": {
        "schedule":  {"frequency": 60, "timeout": 30},
        "providers": {"github": [{"name": "gh", "orgs": [
            {"name": "zero", "crawl_depth": 0},
            {"name": "negative", "crawl_depth": -3},
            {"name": "shallow", "crawl_depth": 1},
        ]}]},
    }}}}

    with caplog.at_level(logging.ERROR, logger="tests.config"):
        sources = read_source_configs(config, log)

    assert [(s.organization, s.crawl_depth) for s in sources] == [("shallow", 1)]
    assert caplog.text.count("crawl_depth must be a positive integer") == 2


def test_unsupported_provider_is_skipped():
    config = {"collection_sync": {"environments": {"dev": {
        "schedule":  {"frequency": 60, "timeout": 30},
        "providers": {"bitbucket": [{"name": "bb", "orgs": [{"name": "x"}]}]},
    }}}}

    assert read_source_configs(config, log) == []


def test_no_environments():
    assert read_source_configs({}, log) == []


@pytest.mark.parametrize("raw", [
    {"frequency": {"minutes": 5}},
    {"frequency": {"fortnights": 1}, "timeout": 10},
    {"frequency": "often", "timeout": 10},
    "hourly",
])
def test_invalid_schedules(raw):
    with pytest.raises(ConfigError):
        read_schedule(raw)


def test_integrations_by_host_with_env_fallback():
    integrations = read_integrations(CONFIG, environ={"GITHUB_TOKEN": "from-env"})

    assert integrations.token_for("github", "github.com") == "gh-public"
    assert integrations.token_for("github", "ghe.example.com") == "gh-enterprise"
    assert integrations.token_for("github", "other.example.com") == "from-env"
    assert integrations.token_for("gitlab", "gitlab.com") == "gl-token"
    assert integrations.token_for("gitlab", "self.hosted") is None


def test_load_config_file(tmp_path):
    path = tmp_path / "app-config.yaml"
    path.write_text("collection_sync:\n  environments: {}\n")

    assert load_config_file(path) == {"collection_sync": {"environments": {}}}


def test_load_config_file_errors(tmp_path):
    with pytest.raises(ConfigError, match="Cannot read"):
        load_config_file(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("a: [1, 2\n")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config_file(broken)

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config_file(listing)
