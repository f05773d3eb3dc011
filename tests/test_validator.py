import pytest

from collection_sync.application.validator import parse_descriptor, validate_galaxy_content
from collection_sync.domain.errors import DescriptorParseError
from collection_sync.domain.galaxy import README_PLACEHOLDER


def _paths(result):
    return [issue.path for issue in result.errors]


def test_minimal_descriptor_gets_defaults():
    result = validate_galaxy_content({"namespace": "ansible", "name": "posix"})

    assert result.success
    data = result.data
    assert data.version == "unknown"
    assert data.readme == README_PLACEHOLDER
    assert data.authors == ["unknown"]
    assert data.tags == []
    assert data.dependencies == {}
    assert data.full_name == "ansible.posix"
    assert not data.has_version


def test_null_version_is_accepted_as_unknown():
    result = validate_galaxy_content({"namespace": "ansible", "name": "posix", "version": None})

    assert result.success
    assert result.data.version == "unknown"


def test_numeric_version_and_dependency_specs_become_strings():
    result = validate_galaxy_content({
        "namespace":    "community",
        "name":         "general",
        "version":      2.0,
        "dependencies": {"ansible.utils": 2},
    })

    assert result.success
    assert result.data.version == "2.0"
    assert result.data.dependencies == {"ansible.utils": "2"}


def test_single_author_string_becomes_list():
    result = validate_galaxy_content({"namespace": "a", "name": "b", "authors": "Jane Doe"})

    assert result.data.authors == ["Jane Doe"]


def test_unknown_keys_are_dropped():
    result = validate_galaxy_content({"namespace": "a", "name": "b", "custom_field": 1})

    assert result.success
    assert not hasattr(result.data, "custom_field")


@pytest.mark.parametrize("bad", ["1ansible", "my-ns", "a__b", "a..b", "_a", "a_"])
def test_invalid_namespace_is_reported_by_path(bad):
    result = validate_galaxy_content({"namespace": bad, "name": "posix"})

    assert not result.success
    assert "namespace" in _paths(result)


@pytest.mark.parametrize("bad", ["9lives", "has space", "x.", "dash-name"])
def test_invalid_name_is_reported_by_path(bad):
    result = validate_galaxy_content({"namespace": "ansible", "name": bad})

    assert not result.success
    assert "name" in _paths(result)


@pytest.mark.parametrize("good", ["ansible", "community_general", "a.b", "A1_b2.c3"])
def test_valid_names_pass(good):
    assert validate_galaxy_content({"namespace": good, "name": good}).success


def test_missing_required_fields_are_all_reported():
    result = validate_galaxy_content({"version": "1.0.0"})

    assert not result.success
    assert set(_paths(result)) == {"namespace", "name"}
    assert "namespace: namespace is required" in [str(e) for e in result.errors]


def test_empty_string_name_is_required_error():
    result = validate_galaxy_content({"namespace": "ansible", "name": ""})

    assert [str(e) for e in result.errors] == ["name: name is required"]


@pytest.mark.parametrize("content", [None, "just a string", ["a", "b"], 42])
def test_non_mapping_content_is_rejected(content):
    result = validate_galaxy_content(content)

    assert not result.success
    assert result.errors[0].message == "galaxy.yml content is empty or not a valid object"


def test_empty_mapping_is_rejected():
    result = validate_galaxy_content({})

    assert not result.success
    assert result.errors[0].message == "galaxy.yml content is empty"


def test_nested_field_errors_use_dotted_paths():
    result = validate_galaxy_content({"namespace": "a", "name": "b", "tags": ["ok", {"no": "dict"}]})

    assert not result.success
    assert "tags.1" in _paths(result)


def test_validation_is_deterministic():
    content = {"namespace": "ansible", "name": "posix", "version": "1.5.4", "tags": ["linux"]}

    assert validate_galaxy_content(content) == validate_galaxy_content(content)


def test_parse_descriptor_reads_yaml():
    assert parse_descriptor("namespace: ansible\nname: posix\n") == {"namespace": "ansible", "name": "posix"}


def test_parse_descriptor_rejects_broken_yaml():
    with pytest.raises(DescriptorParseError, match="Invalid YAML syntax"):
        parse_descriptor("namespace: [unclosed\n  name: x")
