"""Exchanges AWS credentials for Amazon ECR registry credentials."""

from __future__ import annotations

import base64
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Source
from ..errors import InvalidRequest
from .registry import Credentials

logger = logging.getLogger(__name__)


def authenticate(source: Source) -> Credentials:
    """Returns the basic credentials ECR hands out for the configured account."""
    client = boto3.client(
        "ecr",
        region_name=source.aws_region,
        aws_access_key_id=source.aws_access_key_id,
        aws_secret_access_key=source.aws_secret_access_key,
    )
    try:
        response = client.get_authorization_token()
        token = response["authorizationData"][0]["authorizationToken"]
        username, password = base64.b64decode(token).decode().split(":", 1)
    except (BotoCoreError, ClientError, KeyError, IndexError, ValueError) as e:
        raise InvalidRequest(f"cannot authenticate with ECR: {e}") from e

    logger.debug("obtained ECR credentials for %s", source.aws_region)
    return Credentials(username=username, password=password)
