"""Main CLI entry point for image-publisher."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from .backends import ecr
from .backends.image_source import ImageSource, locate
from .backends.notary import NotarySigner
from .backends.registry import Credentials, RegistryClient, RepositoryName
from .config import OutRequest, OutResponse
from .errors import PublishError, RegistryError, RemoteListFailure
from .log import configure_logging
from .planner import TagResolver
from .pusher import PushOrchestrator
from .report import ResultReporter


@click.group()
def cli():
    """Image Publisher: pushes image tarballs to a registry with semver aliases."""


def publish(
    request: OutRequest,
    src: Path,
    registry: Optional[RegistryClient] = None,
    image_source: Optional[ImageSource] = None,
    signer: Optional[NotarySigner] = None,
    logger: Optional[logging.Logger] = None,
) -> OutResponse:
    """
    Runs one publish end to end.

    1. Resolves credentials, exchanging AWS keys for ECR ones when configured.
    2. Resolves the PushPlan; remote tags are listed only for alias bumping.
    3. Locates and loads the image tarball.
    4. Pushes (and signs) every tag, then builds the response.
    """
    source, params = request.source, request.params
    logger = logger or logging.getLogger(__name__)

    RepositoryName.parse(source.repository)

    credentials = Credentials(username=source.username, password=source.password)
    if source.uses_ecr():
        credentials = ecr.authenticate(source)

    registry = registry or RegistryClient()

    def remote_tags():
        try:
            return registry.list_tags(source.repository, credentials)
        except RegistryError as e:
            raise RemoteListFailure(f"list repository tags: {e}") from e

    plan = TagResolver(source.repository, source.variant).resolve(
        source_tag=source.tag,
        target_version=params.version,
        bump_requested=params.bump_aliases,
        additional_tags_file=params.additional_tags_path(src),
        existing_remote_lookup=remote_tags,
    )
    logger.debug("resolved tags: %s", " ".join(plan.labels()))

    image_path = locate(src, params.image)
    image = (image_source or ImageSource()).load(image_path)

    if source.content_trust is not None and signer is None:
        signer = NotarySigner()

    orchestrator = PushOrchestrator(registry, signer=signer, logger=logger)
    digest = orchestrator.push(image, plan, credentials, source.content_trust)

    return ResultReporter().report(plan, digest, source.metadata())


@cli.command()
@click.argument("src", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def out(ctx, src: Path):
    """Publishes the image under SRC described by the JSON request on stdin."""
    logger = configure_logging()

    try:
        request = OutRequest.from_json(click.get_text_stream("stdin").read())
        if request.source.debug:
            logger = configure_logging(debug=True)

        response = publish(request, src, logger=logger)
    except PublishError as e:
        click.secho(f"error: {e}", fg="red", err=True)
        ctx.exit(1)

    ResultReporter().emit(response)


def main():
    cli()


if __name__ == "__main__":
    main()
