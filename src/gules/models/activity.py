"""
Activity record model: tolerant decode/encode of Jules activity payloads.

Wire shape (camelCase, as served by GET /sessions/{id}/activities):

    {"name": "sessions/{sid}/activities/{aid}", "id": "{aid}",
     "createTime": "2025-10-26T00:00:00Z", "originator": "agent",
     "artifacts": [...], "agentMessaged": {"agentMessage": "..."}}

Exactly one kind tag (agentMessaged, planGenerated, ...) is expected per
activity. Fields the payload omits decode to MISSING and are omitted again on
encode. Anything that cannot be decoded losslessly is kept as UnknownKind with
the raw payload.
"""

import copy
import hashlib
import json
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

logger = logging.getLogger(__name__)


class Missing:
    """Marker for a field the remote payload did not carry."""

    _instance: Optional["Missing"] = None

    def __new__(cls) -> "Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "Missing":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "Missing":
        return self


MISSING = Missing()

MaybeStr = Union[StrictStr, None, Missing]
MaybeInt = Union[StrictInt, None, Missing]


class Originator(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class ArtifactType(str, Enum):
    CHANGE_SET = "changeSet"
    MEDIA = "media"
    BASH_OUTPUT = "bashOutput"


class WireModel(BaseModel):
    """Base for payload fragments. Unknown keys are kept; MISSING fields are dropped on encode."""

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        arbitrary_types_allowed=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_defaults=True)


# --- Artifacts ---

class GitPatch(WireModel):
    unidiff_patch: MaybeStr = Field(MISSING, alias="unidiffPatch")
    base_commit_id: MaybeStr = Field(MISSING, alias="baseCommitId")
    suggested_commit_message: MaybeStr = Field(MISSING, alias="suggestedCommitMessage")


class ChangeSet(WireModel):
    source: MaybeStr = MISSING
    git_patch: Union[GitPatch, None, Missing] = Field(MISSING, alias="gitPatch")


class Media(WireModel):
    data: MaybeStr = MISSING  # base64
    mime_type: MaybeStr = Field(MISSING, alias="mimeType")


class BashOutput(WireModel):
    command: MaybeStr = MISSING
    output: MaybeStr = MISSING
    exit_code: MaybeInt = Field(MISSING, alias="exitCode")


class Artifact(WireModel):
    change_set: Union[ChangeSet, None, Missing] = Field(MISSING, alias="changeSet")
    media: Union[Media, None, Missing] = MISSING
    bash_output: Union[BashOutput, None, Missing] = Field(MISSING, alias="bashOutput")

    @property
    def types(self) -> set[ArtifactType]:
        found = set()
        if isinstance(self.change_set, ChangeSet):
            found.add(ArtifactType.CHANGE_SET)
        if isinstance(self.media, Media):
            found.add(ArtifactType.MEDIA)
        if isinstance(self.bash_output, BashOutput):
            found.add(ArtifactType.BASH_OUTPUT)
        return found


# --- Activity kinds ---

class ActivityKind(WireModel):
    tag: ClassVar[str] = ""
    label: ClassVar[str] = ""


class AgentMessage(ActivityKind):
    tag: ClassVar[str] = "agentMessaged"
    label: ClassVar[str] = "Agent Messaged"

    text: MaybeStr = Field(MISSING, alias="agentMessage")


class UserMessage(ActivityKind):
    tag: ClassVar[str] = "userMessaged"
    label: ClassVar[str] = "User Messaged"

    text: MaybeStr = Field(MISSING, alias="userMessage")


class PlanStep(WireModel):
    id: MaybeStr = MISSING
    title: MaybeStr = MISSING
    description: MaybeStr = MISSING
    index: MaybeInt = MISSING


class Plan(WireModel):
    id: MaybeStr = MISSING
    steps: Union[list[PlanStep], Missing] = MISSING
    create_time: MaybeStr = Field(MISSING, alias="createTime")


class PlanGenerated(ActivityKind):
    tag: ClassVar[str] = "planGenerated"
    label: ClassVar[str] = "Plan Generated"

    plan: Union[Plan, Missing] = MISSING


class PlanApproved(ActivityKind):
    tag: ClassVar[str] = "planApproved"
    label: ClassVar[str] = "Plan Approved"

    plan_id: MaybeStr = Field(MISSING, alias="planId")


class ProgressUpdate(ActivityKind):
    tag: ClassVar[str] = "progressUpdated"
    label: ClassVar[str] = "Progress Updated"

    title: MaybeStr = MISSING
    description: MaybeStr = MISSING


class SessionCompleted(ActivityKind):
    tag: ClassVar[str] = "sessionCompleted"
    label: ClassVar[str] = "Session Completed"


class SessionFailed(ActivityKind):
    tag: ClassVar[str] = "sessionFailed"
    label: ClassVar[str] = "Session Failed"

    reason: MaybeStr = MISSING


class UnknownKind(BaseModel):
    """Catch-all kind. `raw` is the complete activity payload as received."""

    model_config = ConfigDict(frozen=True)

    tag: Optional[str] = None
    raw: Any = None


KnownKind = Union[AgentMessage, UserMessage, PlanGenerated, PlanApproved,
                  ProgressUpdate, SessionCompleted, SessionFailed]

KIND_TAGS: dict[str, type[ActivityKind]] = {
    cls.tag: cls
    for cls in (AgentMessage, UserMessage, PlanGenerated, PlanApproved,
                ProgressUpdate, SessionCompleted, SessionFailed)
}

# (attribute, wire key) pairs for the top-level scalar fields
HEADER_FIELDS = (
    ("name", "name"),
    ("id", "id"),
    ("description", "description"),
    ("created_at", "createTime"),
    ("originator", "originator"),
)
STANDARD_KEYS = frozenset(key for _, key in HEADER_FIELDS) | {"artifacts"}


class ActivityRecord(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    session_id: Optional[str] = None
    id: MaybeStr = MISSING
    name: MaybeStr = MISSING
    description: MaybeStr = MISSING
    created_at: MaybeStr = MISSING
    originator: MaybeStr = MISSING
    kind: Union[KnownKind, UnknownKind] = Field(default_factory=UnknownKind)
    artifacts: Union[list[Artifact], Missing] = MISSING
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Identity used for de-duplication within a session."""
        if isinstance(self.id, str) and self.id:
            return self.id
        if isinstance(self.name, str) and "/activities/" in self.name:
            return self.name.rsplit("/", 1)[-1]
        canonical = json.dumps(self.to_payload(), sort_keys=True, default=str)
        return "sha256:" + hashlib.sha256(canonical.encode()).hexdigest()[:16]

    @property
    def timestamp(self) -> Optional[datetime]:
        return parse_timestamp(self.created_at)

    @property
    def timestamp_ns(self) -> Optional[int]:
        """created_at as integer nanoseconds since the epoch; exact where `timestamp` truncates."""
        return timestamp_ns(self.created_at)

    @property
    def originator_kind(self) -> Originator:
        try:
            return Originator(self.originator)
        except ValueError:
            return Originator.UNKNOWN

    @property
    def is_unknown(self) -> bool:
        return isinstance(self.kind, UnknownKind)

    @property
    def label(self) -> str:
        if isinstance(self.kind, UnknownKind):
            if self.kind.tag:
                return f"{camel_to_title(self.kind.tag)} [UNKNOWN]"
            return "[ERROR: No Activity Type]"
        return self.kind.label

    def artifact_list(self) -> list[Artifact]:
        return self.artifacts if isinstance(self.artifacts, list) else []

    def has_artifact(self, artifact_type: ArtifactType) -> bool:
        return any(artifact_type in a.types for a in self.artifact_list())

    def summary(self) -> Optional[str]:
        """One-line human summary, or None for kinds without text."""
        kind = self.kind
        if isinstance(kind, (AgentMessage, UserMessage)):
            return kind.text if isinstance(kind.text, str) else None
        if isinstance(kind, ProgressUpdate):
            for artifact in self.artifact_list():
                bash = artifact.bash_output
                if isinstance(bash, BashOutput) and isinstance(bash.command, str):
                    command = " ".join(bash.command.split())
                    return f"Ran: {command}"
            title = kind.title if isinstance(kind.title, str) else "Progress update"
            description = kind.description if isinstance(kind.description, str) else ""
            return f"{title}: {description}"
        if isinstance(kind, SessionFailed):
            reason = kind.reason if isinstance(kind.reason, str) else "unknown reason"
            return f"Session failed: {reason}"
        return None

    def to_payload(self) -> Any:
        """Encode back to the wire shape. Unknown kinds return their raw payload untouched."""
        if isinstance(self.kind, UnknownKind):
            return copy.deepcopy(self.kind.raw)
        payload: dict[str, Any] = {}
        for attr, key in HEADER_FIELDS:
            value = getattr(self, attr)
            if value is not MISSING:
                payload[key] = value
        if isinstance(self.artifacts, list):
            payload["artifacts"] = [a.to_wire() for a in self.artifacts]
        payload[self.kind.tag] = self.kind.to_wire()
        payload.update(copy.deepcopy(self.extra))
        return payload


class _Drift(Exception):
    pass


def decode_activity(raw: Any, session_id: Optional[str] = None) -> ActivityRecord:
    """Decode one raw activity payload. Never raises."""
    if not isinstance(raw, Mapping):
        logger.debug(f"Activity payload is not an object ({type(raw).__name__}); keeping as unknown")
        return ActivityRecord(session_id=session_id, kind=UnknownKind(raw=copy.deepcopy(raw)))

    tags = [k for k, v in raw.items() if k in KIND_TAGS and v is not None]
    try:
        header = _decode_header(raw)
        artifacts = _decode_artifacts(raw)
        if len(tags) != 1:
            raise _Drift(f"expected one kind tag, found {len(tags)}")
        kind = KIND_TAGS[tags[0]].model_validate(raw[tags[0]])
    except (ValidationError, _Drift) as e:
        logger.debug(f"Activity {raw.get('id')!r} kept as unknown: {e}")
        return _unknown_record(raw, session_id, tags)

    extra = {k: copy.deepcopy(v) for k, v in raw.items() if k not in STANDARD_KEYS and k not in tags}
    return ActivityRecord(
        session_id=session_id or _session_from_name(header.get("name")),
        kind=kind,
        artifacts=artifacts,
        extra=extra,
        **header,
    )


def _decode_header(raw: Mapping[str, Any]) -> dict[str, Any]:
    header: dict[str, Any] = {}
    for attr, key in HEADER_FIELDS:
        if key not in raw:
            header[attr] = MISSING
            continue
        value = raw[key]
        if value is not None and not isinstance(value, str):
            raise _Drift(f"{key} is {type(value).__name__}, expected string")
        header[attr] = value
    return header


def _decode_artifacts(raw: Mapping[str, Any]) -> Union[list[Artifact], Missing]:
    if "artifacts" not in raw:
        return MISSING
    items = raw["artifacts"]
    if not isinstance(items, list):
        raise _Drift("artifacts is not a list")
    return [Artifact.model_validate(item) for item in items]


def _unknown_record(raw: Mapping[str, Any], session_id: Optional[str], tags: list[str]) -> ActivityRecord:
    header = {attr: raw[key] if isinstance(raw.get(key), str) else MISSING for attr, key in HEADER_FIELDS}
    try:
        artifacts = _decode_artifacts(raw)
    except (ValidationError, _Drift):
        artifacts = MISSING
    tag = tags[0] if tags else next(
        (k for k, v in raw.items() if k not in STANDARD_KEYS and v is not None), None,
    )
    return ActivityRecord(
        session_id=session_id or _session_from_name(header.get("name")),
        kind=UnknownKind(tag=tag, raw=copy.deepcopy(dict(raw))),
        artifacts=artifacts,
        **header,
    )


def _session_from_name(name: Any) -> Optional[str]:
    # sessions/{sid}/activities/{aid}
    if isinstance(name, str):
        parts = name.split("/")
        if len(parts) >= 2 and parts[0] == "sessions" and parts[1]:
            return parts[1]
    return None


_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp (nanosecond precision allowed). None if absent or unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def camel_to_title(name: str) -> str:
    """agentMessaged -> Agent Messaged"""
    if not name:
        return ""
    spaced = re.sub(r"(?<!^)([A-Z])", r" \1", name)
    return spaced[0].upper() + spaced[1:]


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def timestamp_ns(value: Any) -> Optional[int]:
    """Nanoseconds since the epoch for an RFC 3339 timestamp, keeping all nine fraction digits."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    match = _FRACTION.search(value)
    nanos = int(match.group(1)[:9].ljust(9, "0")) if match else 0
    delta = parsed.replace(microsecond=0) - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000_000 + nanos
