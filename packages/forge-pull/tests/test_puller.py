"""Tests for streaming image pulls."""

import io
import logging

import pytest
from docker.errors import APIError

from forge_pull.core.exceptions import ListingError, NoMatchingTagError, PullError, StreamError
from forge_pull.core.puller import ImagePuller, PullRequest, PullState
from forge_pull.core.tag_resolver import TagResolver
from forge_pull.utils.docker_utils import AuthConfig
from forge_pull.utils.image_utils import ImageReference

DIGEST = "sha256:" + "a" * 64


class TerminalBuffer(io.StringIO):
    def isatty(self):
        return True


@pytest.fixture
def make_puller(engine, make_lister):
    def _make(local_tags=None, remote_tags=None, local_error=None, out=None):
        resolver = TagResolver(
            make_lister("local", local_tags, error=local_error),
            make_lister("remote", remote_tags),
        )
        return ImagePuller(engine, resolver, out=out if out is not None else TerminalBuffer())
    return _make


class TestImagePuller:
    """Tests for ImagePuller.pull."""

    def test_pull_exact_tag(self, engine, make_puller, progress):
        engine.pull_chunks = progress(
            {"status": "Pulling from myorg/app", "id": "1.2.3"},
            {"status": "Pull complete", "id": "abc123"},
        )
        puller = make_puller()

        result = puller.pull(ImageReference.parse("myorg/app:1.2.3"))

        assert str(result) == "docker.io/myorg/app:1.2.3"
        assert engine.called("pull_image") == [("pull_image", "docker.io/myorg/app", "1.2.3", None)]
        assert puller.last_state is PullState.DONE

    def test_pull_resolves_range_first(self, engine, app_image, make_puller):
        puller = make_puller(local_tags=[], remote_tags=["1.0.0", "1.2.0", "latest"])

        result = puller.pull(app_image)

        assert result.tag == "latest"
        assert engine.called("pull_image")[0][2] == "latest"

    def test_force_prefers_remote(self, make_puller):
        puller = make_puller(local_tags=["1.0.0"], remote_tags=["2.0.0"])

        result = puller.pull(ImageReference.parse("myorg/app:*"), force=True)

        assert result.tag == "2.0.0"

    def test_pull_by_digest_keeps_pin(self, engine, make_puller):
        puller = make_puller(local_tags=["latest"], remote_tags=["latest"])
        image = ImageReference.parse(f"nginx@{DIGEST}")

        result = puller.pull(image)

        assert result == image
        assert result.digest == DIGEST
        assert engine.called("pull_image") == [("pull_image", "docker.io/library/nginx", DIGEST, None)]
        assert puller.resolver.local.calls == 0
        assert puller.resolver.remote.calls == 0
        assert puller.last_state is PullState.DONE

    def test_execute_pull_request(self, engine, make_puller):
        auth = AuthConfig(username="user", password="secret")
        puller = make_puller()

        puller.execute(PullRequest(image=ImageReference.parse("myorg/app:1.0.0"), auth=auth))

        assert engine.called("pull_image")[0][3] == auth

    def test_no_matching_tag(self, engine, app_image, make_puller):
        puller = make_puller(local_tags=[], remote_tags=["2.0.0"])

        with pytest.raises(NoMatchingTagError):
            puller.pull(app_image)

        assert engine.called("pull_image") == []
        assert puller.last_state is PullState.FAILED

    def test_listing_failure_fails_pull(self, engine, app_image, make_puller):
        puller = make_puller(local_error=OSError("daemon unreachable"), remote_tags=["1.0.0"])

        with pytest.raises(ListingError):
            puller.pull(app_image)

        assert engine.called("pull_image") == []
        assert puller.last_state is PullState.FAILED

    def test_partial_progress_then_failure(self, engine, make_puller, progress):
        """Test that a worker failure surfaces after the stream drains cleanly."""
        out = TerminalBuffer()
        engine.pull_chunks = progress(
            {"status": "Downloading", "id": "layer1", "progressDetail": {"current": 10, "total": 100}},
        )
        engine.pull_error = APIError("unauthorized: authentication required")
        puller = make_puller(out=out)

        with pytest.raises(PullError) as exc_info:
            puller.pull(ImageReference.parse("myorg/app:1.0.0"))

        assert exc_info.value.error_type == "auth"
        assert exc_info.value.image == "docker.io/myorg/app:1.0.0"
        assert isinstance(exc_info.value.cause, APIError)
        assert "layer1: Downloading" in out.getvalue()
        assert puller.last_state is PullState.FAILED

    def test_error_record_raises_stream_error(self, engine, make_puller, progress):
        engine.pull_chunks = progress(
            {"status": "Pulling fs layer", "id": "layer1"},
            {"errorDetail": {"message": "manifest unknown"}, "error": "manifest unknown"},
        )
        puller = make_puller()

        with pytest.raises(StreamError) as exc_info:
            puller.pull(ImageReference.parse("myorg/app:9.9.9"))

        assert "manifest unknown" in str(exc_info.value)
        assert puller.last_state is PullState.FAILED

    def test_garbage_stream_raises_stream_error(self, engine, make_puller):
        engine.pull_chunks = [b"not json\r\n"]
        puller = make_puller()

        with pytest.raises(StreamError):
            puller.pull(ImageReference.parse("myorg/app:1.0.0"))

    def test_terminal_output_redraws_layer_lines(self, engine, make_puller, progress):
        out = TerminalBuffer()
        engine.pull_chunks = progress(
            {"status": "Downloading", "id": "layer1", "progressDetail": {"current": 1, "total": 2}},
            {"status": "Downloading", "id": "layer2", "progressDetail": {"current": 1, "total": 2}},
            {"status": "Download complete", "id": "layer1"},
        )

        make_puller(out=out).pull(ImageReference.parse("myorg/app:1.0.0"))

        assert "\x1b[2A" in out.getvalue()
        assert "layer1: Download complete" in out.getvalue()

    def test_non_terminal_output_goes_to_logger(self, engine, make_puller, progress, caplog):
        out = io.StringIO()
        engine.pull_chunks = progress(
            {"status": "Downloading", "id": "layer1", "progressDetail": {"current": 1, "total": 2}},
            {"status": "Pull complete", "id": "layer1"},
            {"status": "Digest: sha256:abc"},
        )

        with caplog.at_level(logging.INFO, logger="forge_pull.progress"):
            make_puller(out=out).pull(ImageReference.parse("myorg/app:1.0.0"))

        messages = [r.getMessage() for r in caplog.records if r.name == "forge_pull.progress"]
        assert messages == ["layer1: Pull complete", "Digest: sha256:abc"]
        assert out.getvalue() == ""
