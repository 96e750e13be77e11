from __future__ import annotations

from typing import List, Optional, TextIO

import click

from .config import MetadataField, OutResponse, ResourceVersion
from .planner import PushPlan


class ResultReporter:
    """Builds the response reported back to the pipeline after a publish."""

    def report(
        self,
        plan: PushPlan,
        digest: str,
        base_metadata: Optional[List[MetadataField]] = None,
    ) -> OutResponse:
        metadata = list(base_metadata or [])
        metadata.append(MetadataField(name="tags", value=" ".join(plan.labels())))

        return OutResponse(
            version=ResourceVersion(tag=plan.primary.label, digest=digest),
            metadata=metadata,
        )

    def emit(self, response: OutResponse, stream: Optional[TextIO] = None) -> None:
        click.echo(response.model_dump_json(), file=stream)
