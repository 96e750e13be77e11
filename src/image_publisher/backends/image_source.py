"""Locates the image tarball produced by a build and loads it into the Docker Engine."""

from __future__ import annotations

import glob
import hashlib
import json
import logging
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import docker
from docker.errors import DockerException

from ..errors import ArtifactAmbiguous, ArtifactNotFound, InvalidRequest

logger = logging.getLogger(__name__)


@dataclass
class ImageHandle:
    """An image tarball loaded into the Docker Engine, ready to be tagged and pushed."""

    path: Path
    content_digest: str
    docker_image: Any

    def digest(self) -> str:
        return self.content_digest


def locate(src: Union[str, Path], pattern: str) -> Path:
    """Resolves a glob, relative to ``src``, that must match exactly one file."""
    matches = sorted(glob.glob(str(Path(src) / pattern)))
    if not matches:
        raise ArtifactNotFound(f"no files match glob '{pattern}'")
    if len(matches) > 1:
        raise ArtifactAmbiguous(f"too many files match glob '{pattern}': {matches}")
    return Path(matches[0])


def config_digest(path: Path) -> str:
    """
    Computes the content digest of the single image in a tarball.

    The digest is the sha256 of the image configuration blob named by the
    tarball's manifest.json, so it only depends on the tarball's content.
    """
    try:
        with tarfile.open(path) as tar:
            manifest_file = tar.extractfile("manifest.json")
            if manifest_file is None:
                raise InvalidRequest(f"no manifest.json in image tarball {path}")
            manifest = json.load(manifest_file)

            if len(manifest) != 1:
                raise InvalidRequest(f"expected exactly one image in {path}, found {len(manifest)}")

            config_file = tar.extractfile(manifest[0]["Config"])
            if config_file is None:
                raise InvalidRequest(f"image config missing from {path}")
            return "sha256:" + hashlib.sha256(config_file.read()).hexdigest()
    except (tarfile.TarError, KeyError, ValueError, OSError) as e:
        raise InvalidRequest(f"could not load image from path '{path}': {e}") from e


class ImageSource:
    """Loads image tarballs through the Docker SDK."""

    def __init__(self, docker_client: Optional[docker.DockerClient] = None):
        self._docker_client = docker_client

    @property
    def docker_client(self) -> docker.DockerClient:
        if self._docker_client is None:
            try:
                self._docker_client = docker.from_env()
            except DockerException as e:
                raise InvalidRequest(f"could not connect to the Docker daemon: {e}") from e
        return self._docker_client

    def load(self, path: Union[str, Path]) -> ImageHandle:
        path = Path(path)
        digest = config_digest(path)

        logger.info("loading image %s", path)
        try:
            with open(path, "rb") as f:
                images = self.docker_client.images.load(f)
        except DockerException as e:
            raise InvalidRequest(f"could not load image from path '{path}': {e}") from e

        if len(images) != 1:
            raise InvalidRequest(f"expected exactly one image in {path}, loaded {len(images)}")

        logger.debug("loaded %s as %s", path, digest)
        return ImageHandle(path=path, content_digest=digest, docker_image=images[0])
