import pytest

from image_publisher.errors import InvalidRequest, InvalidVersion, NoTagsResolved
from image_publisher.planner import ALIAS_RULES, PushPlan, Tag, TagResolver, alias_labels
from image_publisher.versioning import AliasBumpDecision, Version

REPO = "registry.example.com/team/app"


def test_resolver_first_release_bumps_all_aliases():
    lookup_calls = []

    def lookup():
        lookup_calls.append(True)
        return []

    plan = TagResolver(REPO).resolve(
        source_tag="",
        target_version="1.0.0",
        bump_requested=True,
        existing_remote_lookup=lookup,
    )

    assert plan.labels() == ["1.0.0", "latest", "1", "1.0"]
    assert all(tag.repository == REPO for tag in plan)
    assert plan.primary == Tag(REPO, "1.0.0")
    assert len(lookup_calls) == 1


def test_resolver_static_tag_comes_first():
    plan = TagResolver(REPO).resolve(source_tag="edge", target_version="v2.1.0")
    assert plan.labels() == ["edge", "2.1.0"]


def test_resolver_static_tag_only():
    plan = TagResolver(REPO).resolve(source_tag="latest")
    assert plan.labels() == ["latest"]


def test_resolver_without_tag_or_version_fails():
    with pytest.raises(NoTagsResolved):
        TagResolver(REPO).resolve()


def test_resolver_invalid_version():
    with pytest.raises(InvalidVersion):
        TagResolver(REPO).resolve(target_version="not.a.version")


def test_resolver_skips_lookup_without_bump():
    def lookup():
        raise AssertionError("should not list remote tags")

    plan = TagResolver(REPO).resolve(target_version="1.2.3", existing_remote_lookup=lookup)
    assert plan.labels() == ["1.2.3"]


def test_resolver_prerelease_never_bumps():
    def lookup():
        raise AssertionError("should not list remote tags")

    plan = TagResolver(REPO).resolve(
        target_version="1.2.3-rc.1",
        bump_requested=True,
        existing_remote_lookup=lookup,
    )
    assert plan.labels() == ["1.2.3-rc.1"]


def test_resolver_only_bumps_allowed_aliases():
    plan = TagResolver(REPO).resolve(
        target_version="1.2.4",
        bump_requested=True,
        existing_remote_lookup=lambda: ["1.2.3", "1.3.0", "latest", "1", "1.2"],
    )
    assert plan.labels() == ["1.2.4", "1.2"]


def test_resolver_variant_aliases():
    plan = TagResolver(REPO, variant="alpine").resolve(
        target_version="1.2.3",
        bump_requested=True,
        existing_remote_lookup=lambda: ["1.2.2-alpine", "1.4.0"],
    )
    assert plan.labels() == ["1.2.3-alpine", "alpine", "1-alpine", "1.2-alpine"]


def test_resolver_additional_tags(tmp_path):
    tags_file = tmp_path / "tags"
    tags_file.write_text("foo bar\n\tbaz\n\n")

    plan = TagResolver(REPO).resolve(target_version="1.0.0", additional_tags_file=tags_file)
    assert plan.labels() == ["1.0.0", "foo", "bar", "baz"]


def test_resolver_additional_tags_alone(tmp_path):
    tags_file = tmp_path / "tags"
    tags_file.write_text("nightly")

    plan = TagResolver(REPO).resolve(additional_tags_file=tags_file)
    assert plan.labels() == ["nightly"]


def test_resolver_empty_additional_tags_file_fails(tmp_path):
    tags_file = tmp_path / "tags"
    tags_file.write_text("  \n")

    with pytest.raises(NoTagsResolved):
        TagResolver(REPO).resolve(additional_tags_file=tags_file)


def test_resolver_missing_additional_tags_file(tmp_path):
    with pytest.raises(InvalidRequest):
        TagResolver(REPO).resolve(target_version="1.0.0", additional_tags_file=tmp_path / "missing")


def test_resolver_rejects_invalid_additional_tag(tmp_path):
    tags_file = tmp_path / "tags"
    tags_file.write_text("good -bad")

    with pytest.raises(InvalidRequest):
        TagResolver(REPO).resolve(additional_tags_file=tags_file)


def test_resolver_keeps_duplicates_in_order():
    plan = TagResolver(REPO).resolve(source_tag="1.0.0", target_version="1.0.0")
    assert plan.labels()[:2] == ["1.0.0", "1.0.0"]


def test_version_tag_label_round_trips():
    plan = TagResolver(REPO).resolve(target_version="v3.4.5-beta.2")
    assert Version.parse(plan.primary.label) == Version.parse("3.4.5-beta.2")


def test_alias_rule_table():
    version = Version.parse("4.5.6")
    decision = AliasBumpDecision()

    assert [rule.name for rule in ALIAS_RULES] == ["latest", "major", "minor"]
    assert alias_labels(version, decision) == ["latest", "4", "4.5"]
    assert alias_labels(version, decision, "slim") == ["slim", "4-slim", "4.5-slim"]
    assert alias_labels(version, AliasBumpDecision(False, False, False)) == []


def test_push_plan_behaves_like_a_sequence():
    plan = PushPlan()
    plan.append(Tag(REPO, "a"))
    plan.append(Tag(REPO, "b"))

    assert len(plan) == 2
    assert [str(tag) for tag in plan] == [f"{REPO}:a", f"{REPO}:b"]
