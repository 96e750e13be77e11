"""Exception hierarchy for image-publisher.

Every fatal condition raised while publishing derives from PublishError so the
CLI can report it uniformly. Collaborator failures raised by the registry
backend use RegistryError and are wrapped by the push orchestrator.
"""

from __future__ import annotations


class PublishError(Exception):
    """Base class for errors that abort a publish."""


class InvalidRequest(PublishError):
    """The request payload or one of the files it references is malformed."""


class InvalidVersion(PublishError):
    """A version string could not be parsed as a semantic version."""

    def __init__(self, version: str):
        super().__init__(f"invalid semantic version: {version!r}")
        self.version = version


class NoTagsResolved(PublishError):
    """Neither a static tag nor a version produced anything to push."""

    def __init__(self, message: str = "no tag specified - need either 'version:' in params or 'tag:' in source"):
        super().__init__(message)


class ArtifactNotFound(PublishError):
    """The image glob matched no file."""


class ArtifactAmbiguous(PublishError):
    """The image glob matched more than one file."""


class RemoteListFailure(PublishError):
    """Listing the tags already present on the registry failed."""


class PushFailure(PublishError):
    """Writing the image under a tag failed."""

    def __init__(self, tag: str, cause: Exception):
        super().__init__(f"pushing image to {tag} failed: {cause}")
        self.tag = tag
        self.cause = cause


class SigningFailure(PublishError):
    """Signing a pushed tag failed. Logged by the orchestrator, never fatal."""


class RegistryError(Exception):
    """A registry operation failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(RegistryError):
    """The registry answered with 'too many requests'."""
