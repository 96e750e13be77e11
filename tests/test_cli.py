import json
import logging

import pytest
from click.testing import CliRunner

from image_publisher.backends.image_source import ImageHandle
from image_publisher.backends.registry import Credentials
from image_publisher.cli import cli, publish
from image_publisher.config import MetadataField, OutRequest, OutResponse, ResourceVersion
from image_publisher.errors import NoTagsResolved, RegistryError, RemoteListFailure
from image_publisher.log import LOGGER_NAME

REPO = "registry.example.com/team/app"
DIGEST = "sha256:" + "12" * 32


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class FakeRegistry:
    def __init__(self, tags=None, list_error=None):
        self.tags = tags or []
        self.list_error = list_error
        self.listed = []
        self.writes = []

    def list_tags(self, repository, credentials=None):
        self.listed.append((repository, credentials))
        if self.list_error:
            raise self.list_error
        return self.tags

    def write(self, tag, image, credentials=None):
        self.writes.append(str(tag))


class FakeImageSource:
    def __init__(self):
        self.loaded = []

    def load(self, path):
        self.loaded.append(path)
        return ImageHandle(path=path, content_digest=DIGEST, docker_image=None)


def make_request(source=None, params=None):
    payload = {
        "source": dict({"repository": REPO}, **(source or {})),
        "params": dict({"image": "image/image.tar"}, **(params or {})),
    }
    return OutRequest.model_validate(payload)


@pytest.fixture
def src(tmp_path):
    (tmp_path / "image").mkdir()
    (tmp_path / "image" / "image.tar").write_bytes(b"")
    return tmp_path


def test_cli_group_help():
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "pushes image tarballs to a registry" in result.output
    assert "out" in result.output


def test_cli_out_help():
    runner = CliRunner()
    result = runner.invoke(cli, ["out", "--help"])
    assert result.exit_code == 0
    assert "Publishes the image under SRC" in result.output


def test_publish_with_alias_bumping(src):
    registry = FakeRegistry(tags=["0.9.0", "latest", "0", "0.9"])
    image_source = FakeImageSource()
    request = make_request(
        source={"username": "user", "password": "pass"},
        params={"version": "1.0.0", "bump_aliases": True},
    )

    response = publish(request, src, registry=registry, image_source=image_source)

    assert response.version.tag == "1.0.0"
    assert response.version.digest == DIGEST
    assert [(m.name, m.value) for m in response.metadata] == [
        ("repository", REPO),
        ("tags", "1.0.0 latest 1 1.0"),
    ]
    assert registry.writes == [f"{REPO}:1.0.0", f"{REPO}:latest", f"{REPO}:1", f"{REPO}:1.0"]
    assert registry.listed[0][1].username == "user"
    assert image_source.loaded == [src / "image" / "image.tar"]


def test_publish_static_tag_and_additional_tags(src):
    (src / "tags").write_text("sha-abc123 nightly\n")
    registry = FakeRegistry()
    request = make_request(source={"tag": "edge"}, params={"additional_tags": "tags"})

    response = publish(request, src, registry=registry, image_source=FakeImageSource())

    assert response.version.tag == "edge"
    assert registry.writes == [f"{REPO}:edge", f"{REPO}:sha-abc123", f"{REPO}:nightly"]
    assert registry.listed == []


def test_publish_remote_list_failure_is_fatal(src):
    registry = FakeRegistry(list_error=RegistryError("list repository tags: 500"))
    request = make_request(params={"version": "1.0.0", "bump_aliases": True})

    with pytest.raises(RemoteListFailure):
        publish(request, src, registry=registry, image_source=FakeImageSource())

    assert registry.writes == []


def test_publish_without_tags_fails_before_loading(src):
    image_source = FakeImageSource()

    with pytest.raises(NoTagsResolved):
        publish(make_request(), src, registry=FakeRegistry(), image_source=image_source)

    assert image_source.loaded == []


def test_publish_uses_ecr_credentials(src, mocker):
    authenticate = mocker.patch(
        "image_publisher.cli.ecr.authenticate", return_value=Credentials("AWS", "token")
    )
    registry = FakeRegistry()
    request = make_request(
        source={
            "tag": "latest",
            "aws_access_key_id": "AKIA",
            "aws_secret_access_key": "secret",
            "aws_region": "us-east-1",
        }
    )

    publish(request, src, registry=registry, image_source=FakeImageSource())

    authenticate.assert_called_once_with(request.source)


def test_cli_out_prints_response(src, mocker):
    response = OutResponse(
        version=ResourceVersion(tag="1.0.0", digest=DIGEST),
        metadata=[MetadataField(name="tags", value="1.0.0")],
    )
    mock_publish = mocker.patch("image_publisher.cli.publish", return_value=response)
    payload = json.dumps({"source": {"repository": REPO, "debug": True}, "params": {"image": "image/*.tar"}})

    runner = CliRunner()
    result = runner.invoke(cli, ["out", str(src)], input=payload)

    assert result.exit_code == 0
    assert json.loads(result.output.strip().splitlines()[-1]) == {
        "version": {"tag": "1.0.0", "digest": DIGEST},
        "metadata": [{"name": "tags", "value": "1.0.0"}],
    }
    request, src_arg = mock_publish.call_args.args
    assert request.source.debug is True
    assert src_arg == src
    assert logging.getLogger(LOGGER_NAME).level == logging.DEBUG


def test_cli_out_rejects_unknown_fields(src, mocker):
    mock_publish = mocker.patch("image_publisher.cli.publish")
    payload = json.dumps({"source": {"repository": REPO, "colour": "red"}, "params": {"image": "x"}})

    runner = CliRunner()
    result = runner.invoke(cli, ["out", str(src)], input=payload)

    assert result.exit_code == 1
    assert "invalid payload" in result.output
    mock_publish.assert_not_called()


def test_cli_out_reports_publish_errors(src, mocker):
    mocker.patch("image_publisher.cli.publish", side_effect=NoTagsResolved())
    payload = json.dumps({"source": {"repository": REPO}, "params": {"image": "x"}})

    runner = CliRunner()
    result = runner.invoke(cli, ["out", str(src)], input=payload)

    assert result.exit_code == 1
    assert "error: no tag specified" in result.output
    assert '"version"' not in result.output


def test_cli_out_requires_source_dir():
    runner = CliRunner()
    result = runner.invoke(cli, ["out"], input="{}")
    assert result.exit_code != 0
