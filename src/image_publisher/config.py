"""Request and response schema for the out step using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidRequest


class StrictModel(BaseModel):
    """Base for request models: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


class ContentTrust(StrictModel):
    """Notary content trust settings used to sign each pushed tag."""

    server: str
    """URL of the notary server."""

    repository_key_id: str
    """ID of the repository signing key; names the key file in the trust dir."""

    repository_key: str
    """PEM encoded repository private key."""

    repository_passphrase: str
    """Passphrase of the repository key."""

    tls_key: Optional[str] = None
    """PEM encoded TLS client key for the notary server."""

    tls_cert: Optional[str] = None
    """PEM encoded TLS client certificate for the notary server."""


class Source(StrictModel):
    """Where images are published."""

    repository: str
    """Image repository, e.g. 'registry.example.com/team/app'."""

    tag: Optional[str] = None
    """Static tag always pushed, first in the plan."""

    variant: Optional[str] = None
    """Build flavor appended to every version and alias tag."""

    username: Optional[str] = None
    password: Optional[str] = None

    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: Optional[str] = None

    debug: bool = False
    """Enables debug logging."""

    content_trust: Optional[ContentTrust] = None
    """When set, every pushed tag is signed."""

    def uses_ecr(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key and self.aws_region)

    def metadata(self) -> List[MetadataField]:
        """Metadata reported for every publish."""
        return [MetadataField(name="repository", value=self.repository)]


class Params(StrictModel):
    """Per-publish parameters."""

    image: str
    """Glob, relative to the source directory, matching exactly one image tarball."""

    version: Optional[str] = None
    """Semantic version to publish as a tag."""

    bump_aliases: bool = False
    """Repoint 'latest', '<major>' and '<major>.<minor>' when the version is the newest."""

    additional_tags: Optional[str] = None
    """Path, relative to the source directory, of a file with whitespace separated tags."""

    def additional_tags_path(self, src: Union[str, Path]) -> Optional[Path]:
        if not self.additional_tags:
            return None
        return Path(src) / self.additional_tags


class OutRequest(StrictModel):
    """Root request object read from stdin."""

    source: Source
    params: Params

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> OutRequest:
        """Parses and validates a request, raising InvalidRequest on any problem."""
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            raise InvalidRequest(f"invalid payload: {e}") from e


class MetadataField(BaseModel):
    name: str
    value: str


class ResourceVersion(BaseModel):
    tag: str
    digest: str


class OutResponse(BaseModel):
    """Document written to stdout after a successful publish."""

    version: ResourceVersion
    metadata: List[MetadataField] = Field(default_factory=list)
