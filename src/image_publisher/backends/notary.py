"""Wrapper for signing pushed tags via the notary CLI."""

from __future__ import annotations

import base64
import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Optional

import docker
from docker.errors import DockerException

from ..config import ContentTrust
from ..errors import InvalidRequest, SigningFailure
from .registry import Credentials, RepositoryName

logger = logging.getLogger(__name__)


class NotarySigner:
    """Signs tags that are already in the registry with the repository's notary key."""

    def __init__(
        self,
        docker_client: Optional[docker.DockerClient] = None,
        notary_bin: str = "notary",
    ):
        self._docker_client = docker_client
        self.notary_bin = notary_bin
        self.config: Optional[ContentTrust] = None

    @property
    def docker_client(self) -> docker.DockerClient:
        if self._docker_client is None:
            self._docker_client = docker.from_env()
        return self._docker_client

    def prepare_trust_dir(self, config: ContentTrust) -> Path:
        """
        Writes the notary client configuration into a fresh temporary directory.

        Layout:
        - private/<repository_key_id>.key: the repository signing key.
        - tls.key / tls.crt: client TLS material, when configured.
        - config.json: notary client config pointing at all of the above.
        """
        self.config = config
        trust_dir = Path(tempfile.mkdtemp(prefix="notary-"))

        try:
            private = trust_dir / "private"
            private.mkdir(mode=0o700)
            key_path = private / f"{config.repository_key_id}.key"
            key_path.write_text(config.repository_key)
            key_path.chmod(0o600)

            remote_server: Dict[str, str] = {"url": config.server}
            if config.tls_key and config.tls_cert:
                (trust_dir / "tls.key").write_text(config.tls_key)
                (trust_dir / "tls.crt").write_text(config.tls_cert)
                remote_server["tls_client_key"] = str(trust_dir / "tls.key")
                remote_server["tls_client_cert"] = str(trust_dir / "tls.crt")

            with open(trust_dir / "config.json", "w") as f:
                json.dump({"trust_dir": str(trust_dir), "remote_server": remote_server}, f, indent=2)
        except OSError as e:
            shutil.rmtree(trust_dir, ignore_errors=True)
            raise InvalidRequest(f"prepare notary config dir: {e}") from e

        return trust_dir

    def cleanup(self, trust_dir: Path) -> None:
        shutil.rmtree(trust_dir, ignore_errors=True)

    def sign(self, trust_dir: Path, tag, credentials: Credentials, image) -> None:
        """
        Publishes a signed target for the tag.

        The manifest descriptor (digest and size) is read back from the
        registry, so the signature covers what was actually pushed.
        """
        try:
            descriptor = self.docker_client.api.inspect_distribution(
                str(tag), auth_config=credentials.auth_config()
            )["Descriptor"]
            algorithm, _, digest_hex = descriptor["digest"].partition(":")
            size = int(descriptor["size"])
        except (DockerException, KeyError, TypeError, ValueError, AttributeError) as e:
            raise SigningFailure(f"resolve pushed manifest for {tag}: {e!r}") from e

        if algorithm != "sha256":
            raise SigningFailure(f"unsupported digest algorithm {algorithm!r} for {tag}")

        gun = RepositoryName.parse(tag.repository).gun
        cmd = [
            self.notary_bin,
            "-c", str(trust_dir / "config.json"),
            "addhash", gun, tag.label, str(size),
            "--sha256", digest_hex,
            "--publish",
        ]

        env = dict(os.environ)
        if self.config is not None:
            env["NOTARY_TARGETS_PASSPHRASE"] = self.config.repository_passphrase
        if credentials.is_set():
            token = f"{credentials.username}:{credentials.password}".encode()
            env["NOTARY_AUTH"] = base64.b64encode(token).decode()

        logger.debug("executing: %s", " ".join(cmd))
        try:
            subprocess.run(cmd, check=True, env=env, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            raise SigningFailure(f"notary addhash for {tag} failed: {e.stderr.strip() or e}") from e
        except OSError as e:
            raise SigningFailure(f"could not run {self.notary_bin}: {e}") from e
