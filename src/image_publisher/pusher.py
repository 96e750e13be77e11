"""Pushes one loaded image to every tag of a PushPlan, signing as it goes."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from .backends.registry import Credentials
from .config import ContentTrust
from .errors import InvalidRequest, PushFailure, RateLimitError, RegistryError, SigningFailure
from .planner import PushPlan, Tag


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff applied to rate-limited registry writes."""

    attempts: int = 5
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0

    def delays(self) -> Iterator[float]:
        """Yields the wait before each retry; one fewer than the number of attempts."""
        delay = self.initial_delay
        for _ in range(self.attempts - 1):
            yield min(delay, self.max_delay)
            delay *= self.factor


class PushOrchestrator:
    """
    Writes the image under each tag strictly in plan order.

    Rate-limited writes are retried according to the retry policy. Any other
    write failure stops the publish; tags written before it stay written. When
    content trust is configured every written tag is signed, and a signing
    failure only produces a warning.
    """

    def __init__(
        self,
        registry,
        signer=None,
        retry_policy: Optional[RetryPolicy] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.signer = signer
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep

    def push(
        self,
        image,
        plan: PushPlan,
        auth: Credentials,
        signing: Optional[ContentTrust] = None,
    ) -> str:
        image_id = image.digest()
        digest = None

        trust_dir = None
        if signing is not None:
            if self.signer is None:
                raise InvalidRequest("content trust configured but no signer available")
            trust_dir = self.signer.prepare_trust_dir(signing)

        try:
            for tag in plan:
                self.logger.info("pushing to tag %s", tag)
                pushed = self._write(tag, image, auth)
                self.logger.info("pushed %s", tag)

                if pushed:
                    if digest is None:
                        digest = pushed
                    elif pushed != digest:
                        raise PushFailure(
                            str(tag), RegistryError(f"registry reported digest {pushed}, expected {digest}")
                        )

                if trust_dir is not None:
                    self._sign(trust_dir, tag, auth, image)
        finally:
            if trust_dir is not None:
                self.signer.cleanup(trust_dir)

        if digest is None:
            self.logger.warning("registry reported no manifest digest; reporting image ID %s", image_id)
            return image_id
        return digest

    def _write(self, tag: Tag, image, auth: Credentials) -> Optional[str]:
        delays = self.retry_policy.delays()
        while True:
            try:
                return self.registry.write(tag, image, auth)
            except RateLimitError as e:
                delay = next(delays, None)
                if delay is None:
                    raise PushFailure(str(tag), e) from e
                self.logger.warning("too many requests pushing %s; retrying in %.1fs", tag, delay)
                self.sleep(delay)
            except RegistryError as e:
                raise PushFailure(str(tag), e) from e

    def _sign(self, trust_dir, tag: Tag, auth: Credentials, image) -> None:
        self.logger.info("signing %s", tag)
        try:
            self.signer.sign(trust_dir, tag, auth, image)
        except SigningFailure as e:
            self.logger.warning("failed to sign image %s: %s", tag, e)
