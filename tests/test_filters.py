"""Predicate parsing and client-side filtering of cached activities."""

import pytest

from gules.activities import ActivityCache
from gules.errors import InvalidPredicate
from gules.filters import PredicateSpec, apply_filter, parse_artifact_type, parse_kind
from gules.models.activity import (
    AgentMessage,
    ArtifactType,
    PlanApproved,
    PlanGenerated,
    ProgressUpdate,
    SessionCompleted,
    SessionFailed,
    UnknownKind,
    UserMessage,
    decode_activity,
)


@pytest.fixture
def abc(activity, bash):
    """A: agent message, B: progress with bash output, C: session failed."""
    payloads = [
        activity("A", 1),
        activity("B", 2, kind="progressUpdated", artifacts=[bash()]),
        activity("C", 3, kind="sessionFailed"),
    ]
    return [decode_activity(p, "s1") for p in payloads]


def keys(records):
    return [r.key for r in records]


class TestScenario:
    def test_by_kind(self, abc):
        assert keys(apply_filter(abc, PredicateSpec.build(kinds=["agent"]))) == ["A"]

    def test_by_artifact(self, abc):
        assert keys(apply_filter(abc, PredicateSpec.build(has_artifact=["bash"]))) == ["B"]

    def test_last(self, abc):
        assert keys(apply_filter(abc, PredicateSpec.build(last=2))) == ["B", "C"]

    def test_last_larger_than_matches(self, abc):
        assert keys(apply_filter(abc, PredicateSpec.build(last=10))) == ["A", "B", "C"]

    def test_no_predicate_returns_everything(self, abc):
        assert keys(apply_filter(abc, PredicateSpec())) == ["A", "B", "C"]

    def test_predicates_combine(self, abc):
        spec = PredicateSpec.build(kinds=["agent", "progress"], has_artifact=["bash"], last=1)
        assert keys(apply_filter(abc, spec)) == ["B"]

    def test_no_matches(self, abc):
        assert apply_filter(abc, PredicateSpec.build(kinds=["plan"])) == []

    def test_filter_is_pure(self, abc):
        snapshot = list(abc)
        spec = PredicateSpec.build(last=1)
        assert apply_filter(abc, spec) == apply_filter(abc, spec)
        assert abc == snapshot


class TestValidation:
    @pytest.mark.parametrize("last", [0, -1, -100])
    def test_non_positive_last(self, last):
        with pytest.raises(InvalidPredicate):
            PredicateSpec.build(last=last)

    @pytest.mark.parametrize("last", [True, "3", 2.5])
    def test_non_integer_last(self, last):
        with pytest.raises(InvalidPredicate):
            PredicateSpec.build(last=last)

    def test_unvalidated_spec_is_rejected_at_apply(self, abc):
        with pytest.raises(InvalidPredicate):
            apply_filter(abc, PredicateSpec(last=0))

    def test_unknown_kind_alias(self):
        with pytest.raises(InvalidPredicate) as exc_info:
            PredicateSpec.build(kinds=["telepathy"])
        assert "Valid types" in str(exc_info.value)
        assert exc_info.value.code == "invalid_predicate"

    def test_unknown_artifact_alias(self):
        with pytest.raises(InvalidPredicate):
            PredicateSpec.build(has_artifact=["hologram"])

    def test_non_kind_class(self):
        with pytest.raises(InvalidPredicate):
            PredicateSpec.build(kinds=[dict])


class TestAliases:
    @pytest.mark.parametrize("alias,kind", [
        ("agent", AgentMessage),
        ("agent-message", AgentMessage),
        ("user", UserMessage),
        ("user-message", UserMessage),
        ("plan", PlanGenerated),
        ("plan-generated", PlanGenerated),
        ("approved", PlanApproved),
        ("plan-approved", PlanApproved),
        ("progress", ProgressUpdate),
        ("progress-updated", ProgressUpdate),
        ("completed", SessionCompleted),
        ("session-completed", SessionCompleted),
        ("failed", SessionFailed),
        ("session-failed", SessionFailed),
        ("error", SessionFailed),
        ("unknown", UnknownKind),
    ])
    def test_kind_aliases(self, alias, kind):
        assert parse_kind(alias) is kind

    def test_kind_alias_is_case_insensitive(self):
        assert parse_kind("  Agent-Message ") is AgentMessage

    @pytest.mark.parametrize("alias,artifact_type", [
        ("bash", ArtifactType.BASH_OUTPUT),
        ("bash-output", ArtifactType.BASH_OUTPUT),
        ("bashOutput", ArtifactType.BASH_OUTPUT),
        ("changeset", ArtifactType.CHANGE_SET),
        ("change-set", ArtifactType.CHANGE_SET),
        ("patch", ArtifactType.CHANGE_SET),
        ("media", ArtifactType.MEDIA),
        (ArtifactType.MEDIA, ArtifactType.MEDIA),
    ])
    def test_artifact_aliases(self, alias, artifact_type):
        assert parse_artifact_type(alias) is artifact_type

    def test_kind_classes_are_accepted(self, abc):
        spec = PredicateSpec.build(kinds=[SessionFailed])
        assert keys(apply_filter(abc, spec)) == ["C"]

    def test_unknown_selects_drifted_records(self, abc, activity):
        drifted = decode_activity({"id": "D", "createTime": "2025-10-26T00:00:04Z", "newKind": {}}, "s1")
        wrong_type = activity("E", 5, body={"agentMessage": 7})
        records = abc + [drifted, decode_activity(wrong_type, "s1")]

        assert keys(apply_filter(records, PredicateSpec.build(kinds=["unknown"]))) == ["D", "E"]
        assert keys(apply_filter(records, PredicateSpec.build(kinds=["agent"]))) == ["A"]


class TestActivityCacheFilter:
    @pytest.mark.asyncio
    async def test_filter_reads_cache_only(self, cache_config, remote, activity, bash):
        fake = remote({None: ([
            activity("A", 1),
            activity("B", 2, kind="progressUpdated", artifacts=[bash()]),
            activity("C", 3, kind="sessionFailed"),
        ], None)})
        cache = ActivityCache(cache_config, fetch_page=fake)
        await cache.ensure_synced("s1")
        session_file = cache.store.path_for("s1")
        mtime = session_file.stat().st_mtime_ns

        spec = PredicateSpec.build(has_artifact=["bash"])
        assert keys(cache.filter("s1", spec)) == ["B"]
        assert keys(cache.filter("s1", spec)) == ["B"]

        assert len(fake.calls) == 1
        assert session_file.stat().st_mtime_ns == mtime

    def test_uncached_session_is_empty(self, cache_config):
        cache = ActivityCache(cache_config)
        assert cache.filter("never-synced", PredicateSpec.build(last=3)) == []
        assert not cache.store.root.exists()

    @pytest.mark.asyncio
    async def test_sync_requires_fetcher(self, cache_config):
        with pytest.raises(RuntimeError):
            await ActivityCache(cache_config).ensure_synced("s1")
