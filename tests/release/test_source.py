"""
Unit tests for the release catalog client.
"""

import pytest
import requests
import responses

from binarykit.core.exceptions import ErrorKind, SourceUnavailableError
from binarykit.core.platform import PlatformInfo
from binarykit.release.models import Release
from binarykit.release.source import ReleaseSource, tag_candidates
from tests.conftest import RELEASES_URL, REPOSITORY, asset_payload, release_payload


@pytest.fixture
def source():
    return ReleaseSource(REPOSITORY, product_name="rockide")


class TestGetLatest:
    """Test ReleaseSource.get_latest."""

    @responses.activate
    def test_returns_release(self, source):
        responses.add(
            responses.GET,
            f"{RELEASES_URL}/latest",
            json=release_payload("v1.2.3", ["rockide_linux_amd64.tar.gz"]),
        )

        release = source.get_latest()

        assert release.tag == "v1.2.3"
        assert release.published_at.year == 2024
        assert release.assets[0].name == "rockide_linux_amd64.tar.gz"

    @responses.activate
    def test_no_releases_is_none(self, source):
        """Test a never-released product is a normal outcome, not an error."""
        responses.add(responses.GET, f"{RELEASES_URL}/latest", status=404)

        assert source.get_latest() is None

    @responses.activate
    def test_server_error_is_unavailable(self, source):
        responses.add(responses.GET, f"{RELEASES_URL}/latest", status=502)

        with pytest.raises(SourceUnavailableError, match="502") as exc_info:
            source.get_latest()

        assert exc_info.value.kind == ErrorKind.SOURCE_UNAVAILABLE

    @responses.activate
    def test_rate_limited_is_unavailable(self, source):
        responses.add(responses.GET, f"{RELEASES_URL}/latest", status=403)

        with pytest.raises(SourceUnavailableError):
            source.get_latest()

    @responses.activate
    def test_network_failure_is_unavailable(self, source):
        responses.add(
            responses.GET,
            f"{RELEASES_URL}/latest",
            body=requests.exceptions.ConnectionError("no route"),
        )

        with pytest.raises(SourceUnavailableError, match="unreachable"):
            source.get_latest()

    @responses.activate
    def test_invalid_json_is_unavailable(self, source):
        responses.add(responses.GET, f"{RELEASES_URL}/latest", body="<html>")

        with pytest.raises(SourceUnavailableError, match="Invalid JSON"):
            source.get_latest()

    @responses.activate
    def test_token_sent_as_bearer(self):
        source = ReleaseSource(REPOSITORY, product_name="rockide", token="secret")
        responses.add(
            responses.GET, f"{RELEASES_URL}/latest", json=release_payload("v1.0.0")
        )

        source.get_latest()

        assert responses.calls[0].request.headers["Authorization"] == "Bearer secret"


class TestGetByTag:
    """Test ReleaseSource.get_by_tag."""

    @responses.activate
    def test_exact_tag(self, source):
        responses.add(
            responses.GET, f"{RELEASES_URL}/tags/v1.2.3", json=release_payload("v1.2.3")
        )

        assert source.get_by_tag("v1.2.3").tag == "v1.2.3"

    @responses.activate
    def test_bare_version_matches_prefixed_tag(self, source):
        responses.add(responses.GET, f"{RELEASES_URL}/tags/1.2.3", status=404)
        responses.add(
            responses.GET, f"{RELEASES_URL}/tags/v1.2.3", json=release_payload("v1.2.3")
        )

        assert source.get_by_tag("1.2.3").tag == "v1.2.3"

    @responses.activate
    def test_prefixed_version_matches_bare_tag(self, source):
        responses.add(responses.GET, f"{RELEASES_URL}/tags/v2.0.0", status=404)
        responses.add(
            responses.GET, f"{RELEASES_URL}/tags/2.0.0", json=release_payload("2.0.0")
        )

        assert source.get_by_tag("v2.0.0").tag == "2.0.0"

    @responses.activate
    def test_unknown_tag_is_none(self, source):
        responses.add(responses.GET, f"{RELEASES_URL}/tags/v9.9.9", status=404)
        responses.add(responses.GET, f"{RELEASES_URL}/tags/9.9.9", status=404)

        assert source.get_by_tag("v9.9.9") is None


class TestListAll:
    """Test ReleaseSource.list_all."""

    @responses.activate
    def test_sorted_newest_first_without_drafts(self, source):
        responses.add(
            responses.GET,
            RELEASES_URL,
            json=[
                release_payload("v1.0.0", published_at="2024-01-01T00:00:00Z"),
                release_payload("v1.2.0", published_at="2024-03-01T00:00:00Z"),
                release_payload("v1.3.0-draft", draft=True),
                release_payload("v1.1.0", published_at="2024-02-01T00:00:00Z"),
            ],
        )

        tags = [r.tag for r in source.list_all()]

        assert tags == ["v1.2.0", "v1.1.0", "v1.0.0"]

    @responses.activate
    def test_follows_pagination(self, source):
        page_two = f"{RELEASES_URL}?per_page=100&page=2"
        responses.add(
            responses.GET,
            RELEASES_URL,
            json=[release_payload("v2.0.0", published_at="2024-06-01T00:00:00Z")],
            headers={"Link": f'<{page_two}>; rel="next"'},
            match=[responses.matchers.query_param_matcher({"per_page": "100"})],
        )
        responses.add(
            responses.GET,
            RELEASES_URL,
            json=[release_payload("v1.0.0", published_at="2024-01-01T00:00:00Z")],
            match=[
                responses.matchers.query_param_matcher({"per_page": "100", "page": "2"})
            ],
        )

        tags = [r.tag for r in source.list_all()]

        assert tags == ["v2.0.0", "v1.0.0"]
        assert len(responses.calls) == 2

    @responses.activate
    def test_unknown_repository_is_empty(self, source):
        responses.add(responses.GET, RELEASES_URL, status=404)

        assert source.list_all() == []


class TestAssetSelection:
    """Test platform asset and checksum selection."""

    def _release(self):
        return Release.from_api(
            release_payload(
                "v2.0.0",
                [
                    "rockide_linux_amd64.tar.gz",
                    "rockide_darwin_arm64.tar.gz",
                    "checksums.txt",
                ],
            )
        )

    def test_picks_platform_asset(self, source):
        asset = source.pick_asset_for_platform(
            self._release(), PlatformInfo("darwin", "arm64")
        )

        assert asset.name == "rockide_darwin_arm64.tar.gz"
        assert asset.download_url.endswith("/v2.0.0/rockide_darwin_arm64.tar.gz")

    def test_unlisted_platform_is_none(self, source):
        assert (
            source.pick_asset_for_platform(
                self._release(), PlatformInfo("windows", "arm64")
            )
            is None
        )

    def test_picks_checksum_manifest(self, source):
        release = self._release()
        asset = release.find_asset("rockide_linux_amd64.tar.gz")

        assert source.pick_checksum_asset(release, asset).name == "checksums.txt"

    def test_per_asset_checksum_file(self, source):
        release = Release.from_api(
            release_payload(
                "v2.0.0",
                assets=[
                    asset_payload("rockide_linux_amd64.tar.gz", "v2.0.0"),
                    asset_payload("rockide_linux_amd64.tar.gz.sha256", "v2.0.0"),
                ],
            )
        )
        asset = release.assets[0]

        assert (
            source.pick_checksum_asset(release, asset).name
            == "rockide_linux_amd64.tar.gz.sha256"
        )

    def test_no_checksum_published(self, source):
        release = Release.from_api(
            release_payload("v2.0.0", ["rockide_linux_amd64.tar.gz"])
        )

        assert source.pick_checksum_asset(release, release.assets[0]) is None


@pytest.mark.parametrize(
    "tag,expected",
    [("1.2.3", ["1.2.3", "v1.2.3"]), ("v1.2.3", ["v1.2.3", "1.2.3"])],
)
def test_tag_candidates(tag, expected):
    assert tag_candidates(tag) == expected
