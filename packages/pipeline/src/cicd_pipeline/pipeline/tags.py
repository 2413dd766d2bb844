from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import AbstractSet, Iterator

from .trigger import EventKind, TriggerContext

_TAG_INVALID_RE = re.compile(r"[^A-Za-z0-9_.-]")
_TAG_MAX_LEN = 128


class TagScheme(StrEnum):
    SHORT_COMMIT_HASH = "sha"
    BRANCH_REF = "branch"
    PROPOSED_CHANGE_REF = "pr"
    FIXED_LABEL = "fixed"


ALL_SCHEMES: frozenset[TagScheme] = frozenset(TagScheme)

# Declared ordering; the first tag produced is the primary one.
_ORDER = (
    TagScheme.SHORT_COMMIT_HASH,
    TagScheme.BRANCH_REF,
    TagScheme.PROPOSED_CHANGE_REF,
    TagScheme.FIXED_LABEL,
)


@dataclass(frozen=True, slots=True)
class Tag:
    value: str
    scheme: TagScheme


@dataclass(frozen=True, slots=True)
class TagSet:
    tags: tuple[Tag, ...]

    def __iter__(self) -> Iterator[Tag]:
        return iter(self.tags)

    def __len__(self) -> int:
        return len(self.tags)

    @property
    def primary(self) -> Tag:
        if not self.tags:
            raise ValueError("empty tag set has no primary tag")
        return self.tags[0]

    @property
    def values(self) -> tuple[str, ...]:
        return tuple(t.value for t in self.tags)

    def get(self, scheme: TagScheme) -> Tag | None:
        for t in self.tags:
            if t.scheme is scheme:
                return t
        return None

    def to_list(self) -> list[dict[str, str]]:
        return [{"value": t.value, "scheme": t.scheme.value} for t in self.tags]

    @classmethod
    def from_list(cls, items: list[dict[str, str]]) -> "TagSet":
        return cls(tuple(Tag(value=i["value"], scheme=TagScheme(i["scheme"])) for i in items))


def sanitize_tag(value: str) -> str:
    """Map a ref name onto the image-tag alphabet."""
    out = _TAG_INVALID_RE.sub("-", value.strip())
    out = out.lstrip(".-")
    return out[:_TAG_MAX_LEN]


@dataclass(frozen=True, slots=True)
class TagResolver:
    """
    Derives the image tags for a run.

    Resolution is a pure function of the trigger: one resolver instance is
    shared by every stage that needs a tag so the image tag and the recorded
    deployment tag cannot diverge.
    """

    short_sha_length: int = 7
    fixed_label: str = "latest"

    def short_commit_hash(self, ctx: TriggerContext) -> str:
        return ctx.commit_id.strip()[: self.short_sha_length]

    def resolve(
        self,
        ctx: TriggerContext,
        schemes: AbstractSet[TagScheme] | None = None,
    ) -> TagSet:
        wanted = ALL_SCHEMES if schemes is None else frozenset(schemes)
        tags: list[Tag] = []

        for scheme in _ORDER:
            if scheme not in wanted:
                continue
            value = self._value_for(scheme, ctx)
            if value:
                tags.append(Tag(value=value, scheme=scheme))

        return TagSet(tuple(tags))

    def primary(self, ctx: TriggerContext) -> Tag:
        return self.resolve(ctx, {TagScheme.SHORT_COMMIT_HASH}).primary

    def _value_for(self, scheme: TagScheme, ctx: TriggerContext) -> str | None:
        if scheme is TagScheme.SHORT_COMMIT_HASH:
            return self.short_commit_hash(ctx)
        if scheme is TagScheme.BRANCH_REF:
            if ctx.event_kind is not EventKind.DIRECT_PUSH:
                return None
            return sanitize_tag(ctx.branch_name) or None
        if scheme is TagScheme.PROPOSED_CHANGE_REF:
            if ctx.event_kind is not EventKind.PROPOSED_CHANGE:
                return None
            return sanitize_tag(f"pr-{ctx.proposed_change_id}")
        return self.fixed_label or None
