"""Semantic version handling and the alias bump decision."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import semantic_version

from .errors import InvalidVersion

# Accepts the loose forms people put in tags: 'v1', '1.2', '1.2.3-rc.1+build.5'.
VERSION_RE = re.compile(
    r"^v?(?P<major>\d+)"
    r"(?:\.(?P<minor>\d+))?"
    r"(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True)
class Version:
    """
    A parsed semantic version plus the variant label it is published under.

    The variant is part of the tag name only; it never takes part in ordering.
    """

    semver: semantic_version.Version
    variant: str = ""

    @classmethod
    def parse(cls, text: str, variant: Optional[str] = None) -> Version:
        match = VERSION_RE.match(text.strip())
        if not match:
            raise InvalidVersion(text)

        prerelease = match.group("prerelease")
        build = match.group("build")
        try:
            semver = semantic_version.Version(
                major=int(match.group("major")),
                minor=int(match.group("minor") or 0),
                patch=int(match.group("patch") or 0),
                prerelease=tuple(prerelease.split(".")) if prerelease else (),
                build=tuple(build.split(".")) if build else (),
            )
        except ValueError as e:
            raise InvalidVersion(text) from e

        return cls(semver=semver, variant=variant or "")

    @property
    def major(self) -> int:
        return self.semver.major

    @property
    def minor(self) -> int:
        return self.semver.minor

    @property
    def patch(self) -> int:
        return self.semver.patch

    @property
    def prerelease(self) -> str:
        return ".".join(self.semver.prerelease)

    def is_release(self) -> bool:
        return not self.semver.prerelease

    def __str__(self) -> str:
        # A leading 'v' from the input is not preserved; tags are published without it.
        return str(self.semver)

    def __gt__(self, other: Version) -> bool:
        return self.semver > other.semver

    def __lt__(self, other: Version) -> bool:
        return self.semver < other.semver

    def tag_label(self) -> str:
        """The tag this version is published under, variant suffix included."""
        label = str(self)
        if self.variant:
            label += f"-{self.variant}"
        return label


@dataclass(frozen=True)
class AliasBumpDecision:
    """Which floating aliases should be repointed at the target version."""

    bump_latest: bool = True
    bump_major: bool = True
    bump_minor: bool = True


class VersionAliasPlanner:
    """
    Decides which aliases may move to a newly published version.

    An alias only moves forward: any qualifying release already on the
    registry that is newer within the alias' scope keeps it where it is.
    """

    def __init__(self, variant: Optional[str] = None):
        self.variant = variant or ""

    def candidates(self, remote: Iterable[Union[str, Version]]) -> Iterable[Version]:
        """
        Yields the remote releases comparable with the target.

        With a variant set, only tags ending in '-<variant>' are considered and
        the suffix is stripped before parsing. Tags that do not parse and
        prereleases are skipped.
        """
        suffix = f"-{self.variant}" if self.variant else ""
        for item in remote:
            if isinstance(item, Version):
                if item.variant != self.variant:
                    continue
                candidate = item
            else:
                text = item
                if suffix:
                    if not text.endswith(suffix):
                        continue
                    text = text[: -len(suffix)]
                try:
                    candidate = Version.parse(text, self.variant)
                except InvalidVersion:
                    continue

            if not candidate.is_release():
                continue

            yield candidate

    def plan(self, target: Version, remote: Iterable[Union[str, Version]]) -> AliasBumpDecision:
        bump_latest = True
        bump_major = True
        bump_minor = True

        for other in self.candidates(remote):
            if other > target:
                bump_latest = False

            if other.major == target.major and other.minor > target.minor:
                bump_major = False

            if other.major == target.major and other.minor == target.minor and other.patch > target.patch:
                bump_minor = False
                bump_major = False

        return AliasBumpDecision(
            bump_latest=bump_latest,
            bump_major=bump_major,
            bump_minor=bump_minor,
        )
