"""Tests for candidate listing and tag resolution."""

from unittest.mock import Mock

import pytest
import requests
from docker.errors import APIError

from forge_pull.core.exceptions import ListingError, RegistryError
from forge_pull.core.tag_resolver import (
    LocalImageLister,
    RegistryImageLister,
    TagResolver,
    find_most_recent_tag,
)
from forge_pull.utils.image_utils import ImageReference


def _candidates(image: ImageReference, *tags: str) -> list[ImageReference]:
    return [image.with_tag(tag) for tag in tags]


class TestFindMostRecentTag:
    """Tests for the single-pass selection of the best candidate."""

    def test_latest_wins_when_in_range(self, app_image):
        candidates = _candidates(app_image, "1.0.0", "1.9.0", "latest", "1.10.0")
        assert find_most_recent_tag(app_image, candidates).tag == "latest"

    def test_greatest_version_wins(self, app_image):
        candidates = _candidates(app_image, "1.2.0", "1.10.0", "1.9.5", "2.0.0")
        assert find_most_recent_tag(app_image, candidates).tag == "1.10.0"

    def test_out_of_range_candidates_skipped(self, app_image):
        candidates = _candidates(app_image, "2.0.0", "0.9.0", "1.1.0")
        assert find_most_recent_tag(app_image, candidates).tag == "1.1.0"

    def test_first_unversioned_wins_when_only_unversioned(self):
        image = ImageReference.parse("myorg/app:*")
        candidates = _candidates(image, "nightly", "stable", "edge")
        assert find_most_recent_tag(image, candidates).tag == "nightly"

    def test_unversioned_never_displaces_versioned(self):
        image = ImageReference.parse("myorg/app:*")
        candidates = _candidates(image, "1.0.0", "nightly")
        assert find_most_recent_tag(image, candidates).tag == "1.0.0"

    def test_unversioned_best_is_kept(self):
        """Test that versions cannot be compared with an unversioned best."""
        image = ImageReference.parse("myorg/app:*")
        candidates = _candidates(image, "nightly", "1.0.0", "2.0.0")
        assert find_most_recent_tag(image, candidates).tag == "nightly"

    def test_tie_keeps_first_candidate(self):
        image = ImageReference.parse("myorg/app:*")
        candidates = _candidates(image, "v1.2", "1.2.0")
        assert find_most_recent_tag(image, candidates).tag == "v1.2"

    def test_nothing_applicable(self, app_image):
        assert find_most_recent_tag(app_image, _candidates(app_image, "2.0.0", "stable")) is None
        assert find_most_recent_tag(app_image, []) is None

    def test_other_repositories_ignored(self, app_image):
        other = ImageReference.parse("myorg/other:1.5.0")
        assert find_most_recent_tag(app_image, [other]) is None


class TestTagResolver:
    """Tests for TagResolver source selection."""

    def test_exact_tag_returned_without_listing(self, make_lister):
        local = make_lister("local", ["1.0.0"])
        remote = make_lister("remote", ["2.0.0"])
        resolver = TagResolver(local, remote)

        assert resolver.resolve(ImageReference.parse("myorg/app:1.2.3")) == "1.2.3"
        assert resolver.resolve(ImageReference.parse("myorg/app")) == "latest"
        assert local.calls == 0
        assert remote.calls == 0

    def test_local_candidates_preferred(self, app_image, make_lister):
        local = make_lister("local", ["1.0.0", "1.3.0"])
        remote = make_lister("remote", ["1.9.0"])

        assert TagResolver(local, remote).resolve(app_image) == "1.3.0"
        assert remote.calls == 0

    def test_remote_used_when_local_empty(self, app_image, make_lister):
        local = make_lister("local", [])
        remote = make_lister("remote", ["1.0.0", "1.2.0", "latest"])

        assert TagResolver(local, remote).resolve(app_image) == "latest"
        assert local.calls == 1
        assert remote.calls == 1

    def test_force_replaces_local_with_remote(self, make_lister):
        image = ImageReference.parse("myorg/app:*")
        local = make_lister("local", ["1.0.0"])
        remote = make_lister("remote", ["2.0.0"])

        assert TagResolver(local, remote).resolve(image, force=True) == "2.0.0"

    def test_force_does_not_merge_lists(self, make_lister):
        image = ImageReference.parse("myorg/app:*")
        local = make_lister("local", ["3.0.0"])
        remote = make_lister("remote", ["2.0.0"])

        assert TagResolver(local, remote).resolve(image, force=True) == "2.0.0"

    def test_local_failure_is_terminal(self, app_image, make_lister):
        local = make_lister("local", error=OSError("daemon unreachable"))
        remote = make_lister("remote", ["1.0.0"])

        with pytest.raises(ListingError) as exc_info:
            TagResolver(local, remote).resolve(app_image)

        assert exc_info.value.source == "local"
        assert remote.calls == 0

    def test_remote_failure_propagates(self, app_image, make_lister):
        local = make_lister("local", [])
        remote = make_lister("remote", error=RuntimeError("boom"))

        with pytest.raises(ListingError) as exc_info:
            TagResolver(local, remote).resolve(app_image)
        assert exc_info.value.source == "remote"

    def test_no_applicable_tag_returns_none(self, app_image, make_lister):
        local = make_lister("local", [])
        remote = make_lister("remote", ["2.0.0", "0.1.0"])

        assert TagResolver(local, remote).resolve(app_image) is None


class TestLocalImageLister:
    """Tests for listing candidates from the local engine."""

    def test_filters_and_explodes_repo_tags(self, engine, app_image):
        engine.images = [
            {"RepoTags": ["myorg/app:1.0.0", "myorg/app:2.0.0", "myorg/other:1.1.0"]},
            {"RepoTags": ["<none>:<none>"]},
            {"RepoTags": None},
            {"RepoTags": ["docker.io/myorg/app:1.4.0", "myorg/app:latest"]},
        ]

        tags = [c.tag for c in LocalImageLister(engine).list_images(app_image)]
        assert tags == ["1.0.0", "1.4.0", "latest"]

    def test_skips_unparseable_tags(self, engine, app_image):
        engine.images = [{"RepoTags": ["bad;name:1.0.0", "myorg/app:1.1.0"]}]

        tags = [c.tag for c in LocalImageLister(engine).list_images(app_image)]
        assert tags == ["1.1.0"]

    def test_deduplicates_within_image(self, engine, app_image):
        engine.images = [
            {"RepoTags": ["myorg/app:1.0.0", "docker.io/myorg/app:1.0.0"]},
            {"RepoTags": ["index.docker.io/myorg/app:1.0.0"]},
        ]

        tags = [c.tag for c in LocalImageLister(engine).list_images(app_image)]
        assert tags == ["1.0.0", "1.0.0"]

    def test_engine_failure_raises_listing_error(self, engine, app_image):
        engine.list_error = APIError("server error")

        with pytest.raises(ListingError) as exc_info:
            LocalImageLister(engine).list_images(app_image)
        assert exc_info.value.source == "local"
        assert isinstance(exc_info.value.cause, APIError)


class TestRegistryImageLister:
    """Tests for listing candidates from the registry."""

    def test_returns_all_tags_unfiltered(self, app_image):
        client = Mock()
        client.list_tags.return_value = ["1.0.0", "2.0.0", "nightly"]

        candidates = RegistryImageLister(client).list_images(app_image)

        client.list_tags.assert_called_once_with("docker.io", "myorg/app")
        assert [c.tag for c in candidates] == ["1.0.0", "2.0.0", "nightly"]
        assert all(c.same_repository(app_image) for c in candidates)

    @pytest.mark.parametrize("error", [
        RegistryError("docker.io", "failed", 500),
        requests.ConnectionError("refused"),
    ])
    def test_failure_raises_listing_error(self, app_image, error):
        client = Mock()
        client.list_tags.side_effect = error

        with pytest.raises(ListingError) as exc_info:
            RegistryImageLister(client).list_images(app_image)
        assert exc_info.value.source == "remote"
