"""Registry access: tag listing over the HTTP API and tag writes through the Docker Engine."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

import docker
import requests
from docker.auth import INDEX_NAME, resolve_repository_name
from docker.errors import DockerException, InvalidRepository

from ..errors import InvalidRequest, RateLimitError, RegistryError

logger = logging.getLogger(__name__)

DOCKER_HUB_API = "registry-1.docker.io"
REQUEST_TIMEOUT = 30
RATE_LIMIT_MARKERS = ("toomanyrequests", "too many requests", "429")
CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class Credentials:
    """Basic registry credentials. Only used when both halves are present."""

    username: Optional[str] = None
    password: Optional[str] = None

    def is_set(self) -> bool:
        return bool(self.username and self.password)

    def basic(self) -> Optional[Tuple[str, str]]:
        return (self.username, self.password) if self.is_set() else None

    def auth_config(self) -> Optional[Dict[str, str]]:
        if not self.is_set():
            return None
        return {"username": self.username, "password": self.password}


@dataclass(frozen=True)
class RepositoryName:
    """A repository split into the registry host and the path on that registry."""

    registry: str
    path: str

    @classmethod
    def parse(cls, repository: str) -> RepositoryName:
        try:
            index_name, remote_name = resolve_repository_name(repository)
        except InvalidRepository as e:
            raise InvalidRequest(f"could not resolve repository: {e}") from e

        if index_name == INDEX_NAME:
            if "/" not in remote_name:
                remote_name = f"library/{remote_name}"
            return cls(registry=DOCKER_HUB_API, path=remote_name)
        return cls(registry=index_name, path=remote_name)

    @property
    def api_base(self) -> str:
        return f"https://{self.registry}/v2/"

    @property
    def gun(self) -> str:
        """Globally unique name used by notary for this repository."""
        registry = INDEX_NAME if self.registry == DOCKER_HUB_API else self.registry
        return f"{registry}/{self.path}"


def is_rate_limited(message: str, status_code: Optional[int] = None) -> bool:
    if status_code == 429:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


class RegistryClient:
    """Lists and writes tags of a repository."""

    def __init__(
        self,
        docker_client: Optional[docker.DockerClient] = None,
        session: Optional[requests.Session] = None,
    ):
        self._docker_client = docker_client
        self.session = session or requests.Session()

    @property
    def docker_client(self) -> docker.DockerClient:
        if self._docker_client is None:
            try:
                self._docker_client = docker.from_env()
            except DockerException as e:
                raise RegistryError(f"could not connect to the Docker daemon: {e}") from e
        return self._docker_client

    def list_tags(self, repository: str, credentials: Optional[Credentials] = None) -> List[str]:
        """
        Returns every tag of the repository.

        Follows 'Link' pagination and answers Bearer/Basic challenges with the
        given credentials. A repository that does not exist yet has no tags.
        """
        name = RepositoryName.parse(repository)
        credentials = credentials or Credentials()
        url = urljoin(name.api_base, f"{name.path}/tags/list")
        headers: Dict[str, str] = {}
        auth = None
        tags: List[str] = []

        while url:
            logger.debug("listing tags: %s", url)
            res = self._get(url, headers, auth)
            if res.status_code == 401:
                headers, auth = self._authorize(res, name, credentials)
                res = self._get(url, headers, auth)

            if res.status_code == 404:
                return tags
            if res.status_code != 200:
                message = f"list repository tags: {res.status_code} {res.text.strip()}"
                if is_rate_limited(message, res.status_code):
                    raise RateLimitError(message, res.status_code)
                raise RegistryError(message, res.status_code)

            try:
                tags.extend(res.json().get("tags") or [])
            except (ValueError, AttributeError) as e:
                raise RegistryError(f"list repository tags: invalid response: {e}") from e

            next_link = res.links.get("next", {}).get("url")
            url = urljoin(url, next_link) if next_link else None

        return tags

    def write(self, tag, image, credentials: Optional[Credentials] = None) -> Optional[str]:
        """
        Tags the loaded image and pushes it.

        Returns the manifest digest the registry reported for the tag, or None
        when the push stream carried none.

        Errors reported in the push stream are raised as RegistryError, or
        RateLimitError when the registry asked us to slow down.
        """
        credentials = credentials or Credentials()
        digest = None
        try:
            image.docker_image.tag(tag.repository, tag=tag.label)
            output = self.docker_client.images.push(
                tag.repository,
                tag=tag.label,
                auth_config=credentials.auth_config(),
                stream=True,
                decode=True,
            )
            for line in output:
                if "error" in line:
                    message = line.get("errorDetail", {}).get("message") or line["error"]
                    if is_rate_limited(message):
                        raise RateLimitError(message, 429)
                    raise RegistryError(message)
                if isinstance(line.get("aux"), dict) and line["aux"].get("Digest"):
                    digest = line["aux"]["Digest"]
                if "status" in line:
                    logger.debug("%s: %s", tag, line["status"])
        except DockerException as e:
            status_code = getattr(e, "status_code", None)
            if is_rate_limited(str(e), status_code):
                raise RateLimitError(str(e), status_code) from e
            raise RegistryError(str(e), status_code) from e

        return digest

    def _get(self, url: str, headers: Dict[str, str], auth=None) -> requests.Response:
        try:
            return self.session.get(url, headers=headers, auth=auth, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise RegistryError(f"list repository tags: {e}") from e

    def _authorize(
        self, res: requests.Response, name: RepositoryName, credentials: Credentials
    ) -> Tuple[Dict[str, str], Optional[Tuple[str, str]]]:
        challenge = res.headers.get("WWW-Authenticate", "")
        scheme = challenge.split(" ", 1)[0].lower()

        if scheme == "basic":
            if not credentials.is_set():
                raise RegistryError("list repository tags: registry requires credentials", 401)
            return {}, credentials.basic()

        if scheme != "bearer":
            raise RegistryError(f"list repository tags: unsupported challenge {challenge!r}", 401)

        params = dict(CHALLENGE_PARAM_RE.findall(challenge))
        realm = params.pop("realm", None)
        if not realm:
            raise RegistryError("list repository tags: bearer challenge without realm", 401)
        params.setdefault("scope", f"repository:{name.path}:pull")

        try:
            token_res = self.session.get(
                realm, params=params, auth=credentials.basic(), timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise RegistryError(f"fetch registry token: {e}") from e
        if token_res.status_code != 200:
            raise RegistryError(
                f"fetch registry token: {token_res.status_code} {token_res.text.strip()}",
                token_res.status_code,
            )

        body = token_res.json()
        token = body.get("token") or body.get("access_token")
        return {"Authorization": f"Bearer {token}"}, None
