import logging

from collection_sync.application.deduplicator import (
    InMemoryDeduplicator,
    collection_identity,
    dedupe,
    identity_key,
)
from collection_sync.application.validator import validate_galaxy_content
from collection_sync.domain.entities import DescriptorOccurrence

from fakes import make_repo, make_source

log = logging.getLogger("tests.dedup")


def occurrence(repo_name, namespace, name, version="1.0.0", ref="main", path="galaxy.yml"):
    content = {"namespace": namespace, "name": name, "version": version}
    return DescriptorOccurrence(
        repository  = make_repo(repo_name),
        ref         = ref,
        ref_type    = "branch",
        path        = path,
        raw_content = "",
        metadata    = validate_galaxy_content(content).data,
    )


def test_identity_key_format():
    source = make_source()

    key = identity_key(occurrence("r", "ansible", "posix", "1.5.4"), source)

    assert key == "github:github-public:acme:ansible.posix@1.5.4"


def test_identity_ignores_repository_ref_and_path():
    source = make_source()
    first  = occurrence("one", "ansible", "posix", ref="main", path="galaxy.yml")
    second = occurrence("two", "ansible", "posix", ref="devel", path="sub/galaxy.yml")

    assert collection_identity(first, source) == collection_identity(second, source)


def test_identity_differs_by_version_and_source():
    source = make_source()
    other  = make_source(organization="other")
    a = occurrence("r", "ansible", "posix", "1.0.0")
    b = occurrence("r", "ansible", "posix", "2.0.0")

    assert identity_key(a, source) != identity_key(b, source)
    assert identity_key(a, source) != identity_key(a, other)


def test_first_occurrence_wins_in_input_order(caplog):
    source = make_source()
    items  = [
        occurrence("one", "ansible", "posix"),
        occurrence("two", "ansible", "utils"),
        occurrence("three", "ansible", "posix"),
    ]

    with caplog.at_level(logging.INFO, logger="tests.dedup"):
        unique = dedupe(items, set(), source, log)

    assert [o.repository.name for o in unique] == ["one", "two"]
    assert "Skipped 1 duplicate collections" in caplog.text
    assert "acme/three/galaxy.yml@main" in caplog.text


def test_dedupe_is_idempotent_with_fresh_seen_sets():
    source = make_source()
    items  = [
        occurrence("a", "x", "one"),
        occurrence("b", "x", "two"),
        occurrence("c", "x", "one"),
        occurrence("d", "x", "three"),
    ]

    assert dedupe(items, set(), source, log) == dedupe(items, set(), source, log)


def test_seen_keys_carry_across_batches():
    dedup  = InMemoryDeduplicator(make_source(), log)
    batch1 = [occurrence("one", "ansible", "posix")]
    batch2 = [occurrence("two", "ansible", "posix"), occurrence("two", "ansible", "utils")]

    assert len(dedup.filter_fresh(batch1)) == 1
    assert [o.metadata.name for o in dedup.filter_fresh(batch2)] == ["utils"]
    assert dedup.total_seen() == 2
