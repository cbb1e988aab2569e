"""
Client-side activity filters. Pure functions over cached records; no I/O.

Predicates compose by AND:
  kinds         record kind is one of the selected variants
  has_artifact  record carries at least one artifact of each selected type
  last          keep only the final N matches (ascending time order)
"""

from collections.abc import Iterable, Sequence
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from gules.errors import InvalidPredicate
from gules.models.activity import (
    ActivityRecord,
    AgentMessage,
    ArtifactType,
    PlanApproved,
    PlanGenerated,
    ProgressUpdate,
    SessionCompleted,
    SessionFailed,
    UnknownKind,
    UserMessage,
)


KIND_ALIASES: dict[str, type] = {
    "agent-message": AgentMessage,
    "agent": AgentMessage,
    "user-message": UserMessage,
    "user": UserMessage,
    "plan": PlanGenerated,
    "plan-generated": PlanGenerated,
    "plan-approved": PlanApproved,
    "approved": PlanApproved,
    "progress": ProgressUpdate,
    "progress-updated": ProgressUpdate,
    "completed": SessionCompleted,
    "session-completed": SessionCompleted,
    "failed": SessionFailed,
    "session-failed": SessionFailed,
    "error": SessionFailed,
    "unknown": UnknownKind,
}

ARTIFACT_ALIASES: dict[str, ArtifactType] = {
    "bash": ArtifactType.BASH_OUTPUT,
    "bash-output": ArtifactType.BASH_OUTPUT,
    "bashoutput": ArtifactType.BASH_OUTPUT,
    "change-set": ArtifactType.CHANGE_SET,
    "changeset": ArtifactType.CHANGE_SET,
    "patch": ArtifactType.CHANGE_SET,
    "media": ArtifactType.MEDIA,
}


def parse_kind(name: str) -> type:
    try:
        return KIND_ALIASES[name.strip().lower()]
    except KeyError:
        valid = ", ".join(sorted(KIND_ALIASES))
        raise InvalidPredicate(f"Unknown activity type: {name!r}. Valid types: {valid}") from None


def parse_artifact_type(name: Union[str, ArtifactType]) -> ArtifactType:
    if isinstance(name, ArtifactType):
        return name
    key = name.strip().lower()
    if key in ARTIFACT_ALIASES:
        return ARTIFACT_ALIASES[key]
    for artifact_type in ArtifactType:
        if artifact_type.value.lower() == key:
            return artifact_type
    valid = ", ".join(sorted(ARTIFACT_ALIASES))
    raise InvalidPredicate(f"Unknown artifact type: {name!r}. Valid types: {valid}")


class PredicateSpec(BaseModel):
    """A validated filter request. Build with `PredicateSpec.build(...)`."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kinds: frozenset[Any] = frozenset()
    has_artifact: frozenset[ArtifactType] = frozenset()
    last: Optional[int] = None

    @classmethod
    def build(
        cls,
        kinds: Iterable[Union[str, type]] = (),
        has_artifact: Iterable[Union[str, ArtifactType]] = (),
        last: Optional[int] = None,
    ) -> "PredicateSpec":
        """Parse aliases and validate. Raises InvalidPredicate before any filtering happens."""
        resolved = set()
        for kind in kinds:
            if isinstance(kind, str):
                resolved.add(parse_kind(kind))
            elif kind in KIND_ALIASES.values():
                resolved.add(kind)
            else:
                raise InvalidPredicate(f"Not an activity kind: {kind!r}")
        if last is not None:
            if isinstance(last, bool) or not isinstance(last, int):
                raise InvalidPredicate(f"last must be an integer, got {last!r}")
            if last <= 0:
                raise InvalidPredicate(f"last must be positive, got {last}")
        return cls(
            kinds=frozenset(resolved),
            has_artifact=frozenset(parse_artifact_type(a) for a in has_artifact),
            last=last,
        )

    def matches(self, record: ActivityRecord) -> bool:
        if self.kinds and type(record.kind) not in self.kinds:
            return False
        return all(record.has_artifact(t) for t in self.has_artifact)


def apply_filter(records: Sequence[ActivityRecord], spec: PredicateSpec) -> list[ActivityRecord]:
    """Select matching records, keeping their order. Never mutates `records`."""
    if spec.last is not None and spec.last <= 0:
        raise InvalidPredicate(f"last must be positive, got {spec.last}")
    selected = [r for r in records if spec.matches(r)]
    if spec.last is not None:
        selected = selected[-spec.last:]
    return selected
