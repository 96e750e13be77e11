"""The TagResolver turns a request into the ordered list of tags to push."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Union

from .errors import InvalidRequest, NoTagsResolved
from .versioning import AliasBumpDecision, Version, VersionAliasPlanner

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")

RemoteLookup = Callable[[], Iterable[Union[str, Version]]]


@dataclass(frozen=True)
class Tag:
    """A single reference to write: repository plus tag label."""

    repository: str
    label: str

    def __post_init__(self):
        if not TAG_RE.match(self.label):
            raise InvalidRequest(f"invalid tag {self.label!r} for repository {self.repository}")

    def __str__(self) -> str:
        return f"{self.repository}:{self.label}"


@dataclass
class PushPlan:
    """
    Ordered tags to push for one publish.

    The first tag is the primary one reported back to the pipeline. Duplicates
    are kept as resolved.
    """

    tags: List[Tag] = field(default_factory=list)

    def append(self, tag: Tag) -> None:
        self.tags.append(tag)

    @property
    def primary(self) -> Tag:
        return self.tags[0]

    def labels(self) -> List[str]:
        return [tag.label for tag in self.tags]

    def __iter__(self) -> Iterator[Tag]:
        return iter(self.tags)

    def __len__(self) -> int:
        return len(self.tags)


@dataclass(frozen=True)
class AliasRule:
    """How one floating alias is named, with and without a variant."""

    name: str
    plain: Callable[[Version], str]
    with_variant: Callable[[Version, str], str]


# 'latest' is replaced by the bare variant name; numeric aliases get it as a suffix.
ALIAS_RULES = (
    AliasRule(
        name="latest",
        plain=lambda v: "latest",
        with_variant=lambda v, variant: variant,
    ),
    AliasRule(
        name="major",
        plain=lambda v: f"{v.major}",
        with_variant=lambda v, variant: f"{v.major}-{variant}",
    ),
    AliasRule(
        name="minor",
        plain=lambda v: f"{v.major}.{v.minor}",
        with_variant=lambda v, variant: f"{v.major}.{v.minor}-{variant}",
    ),
)


def alias_labels(version: Version, decision: AliasBumpDecision, variant: Optional[str] = None) -> List[str]:
    """Returns the alias labels to push for a decision, in latest/major/minor order."""
    enabled = {
        "latest": decision.bump_latest,
        "major": decision.bump_major,
        "minor": decision.bump_minor,
    }

    labels = []
    for rule in ALIAS_RULES:
        if not enabled[rule.name]:
            continue
        labels.append(rule.with_variant(version, variant) if variant else rule.plain(version))
    return labels


def read_additional_tags(path: Union[str, Path]) -> List[str]:
    """Reads whitespace separated tag names from a file."""
    try:
        content = Path(path).read_text()
    except OSError as e:
        raise InvalidRequest(f"could not parse additional tags: {e}") from e
    return content.split()


class TagResolver:
    """Assembles the PushPlan from the static tag, the version, its aliases and extra tags."""

    def __init__(self, repository: str, variant: Optional[str] = None):
        self.repository = repository
        self.variant = variant or None

    def resolve(
        self,
        source_tag: Optional[str] = None,
        target_version: Optional[str] = None,
        bump_requested: bool = False,
        additional_tags_file: Optional[Union[str, Path]] = None,
        existing_remote_lookup: Optional[RemoteLookup] = None,
    ) -> PushPlan:
        plan = PushPlan()

        # 1. Static tag from the source configuration
        if source_tag:
            plan.append(Tag(self.repository, source_tag))

        # 2. The version itself, then 3. the aliases it is allowed to take over
        if target_version:
            version = Version.parse(target_version, self.variant)
            plan.append(Tag(self.repository, version.tag_label()))

            if bump_requested and version.is_release():
                if existing_remote_lookup is None:
                    raise InvalidRequest("alias bumping requires a remote tag lookup")

                remote = list(existing_remote_lookup())
                decision = VersionAliasPlanner(self.variant).plan(version, remote)
                logger.debug("alias decision for %s: %s", version, decision)

                for label in alias_labels(version, decision, self.variant):
                    plan.append(Tag(self.repository, label))
            elif bump_requested:
                logger.info("not bumping aliases for prerelease %s", version)

        # 4. User supplied tags
        if additional_tags_file:
            for label in read_additional_tags(additional_tags_file):
                plan.append(Tag(self.repository, label))

        if not plan:
            raise NoTagsResolved()

        return plan
