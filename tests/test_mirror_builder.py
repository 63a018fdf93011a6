"""Tests for the local mirror builder."""

import gzip
from datetime import datetime, timezone

import pytest

from common.errors import RegistryUnavailable
from mirror.builder import MirrorBuilder, token_package
from mirror.index import read_index, write_index
from registry.models import Release
from resolution.models import ResolvedRelease


def _release(dist, version, modules, author="ALICE", url=True):
    archive = f"{dist}-{version}.tar.gz"
    return Release(
        distribution_name=dist,
        version=version,
        release_date="2020-01-01",
        author=author,
        archive_url=f"https://cpan.example.org/authors/id/{author[0]}/{author[:2]}/{author}/{archive}" if url else "",
        provided_modules=modules,
        archive=archive,
    )


class FakeDownloader:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.urls = []

    def __call__(self, url, dest):
        self.urls.append(url)
        if url in self.fail:
            raise RegistryUnavailable(url, "HTTP 404", status_code=404)
        with open(dest, "wb") as handle:
            handle.write(b"archive")
        return 7


@pytest.fixture
def foo():
    return _release("Foo-Bar", "1.0", {"Foo::Bar": "1.0", "Foo::Bar::Util": None})


class TestTokenPackage:
    def test_prefers_distribution_named_module(self, foo):
        assert token_package(foo) == "Foo::Bar"

    def test_falls_back_to_first_module(self):
        assert token_package(_release("libwww-perl", "6.0", {"LWP": "6.0", "HTTP::Foo": "1"})) == "HTTP::Foo"

    def test_no_modules(self):
        assert token_package(_release("Empty", "1.0", {})) is None


class TestIndex:
    def test_round_trip_and_header(self, tmp_path):
        path = str(tmp_path / "modules" / "02packages.details.txt.gz")
        write_index(path, {"Foo::Bar": ("1.0", "A/AL/ALICE/Foo-Bar-1.0.tar.gz")}, now=datetime(2024, 1, 2, tzinfo=timezone.utc))

        with gzip.open(path, "rt", encoding="utf-8") as handle:
            text = handle.read()
        assert "Line-Count:   1\n" in text
        assert "Last-Updated: Tue, 02 Jan 2024 00:00:00 GMT" in text
        assert read_index(path) == {"Foo::Bar": ("1.0", "A/AL/ALICE/Foo-Bar-1.0.tar.gz")}

    def test_missing_index_is_empty(self, tmp_path):
        assert read_index(str(tmp_path / "none.gz")) == {}


class TestMirrorBuilder:
    def test_build_layout(self, tmp_path, foo):
        downloader = FakeDownloader()
        builder = MirrorBuilder(str(tmp_path), downloader=downloader)

        report = builder.build([ResolvedRelease(foo, ["Foo::Bar"])])

        assert report.downloaded == ["Foo-Bar-1.0"]
        assert (tmp_path / "authors" / "id" / "A" / "AL" / "ALICE" / "Foo-Bar-1.0.tar.gz").read_bytes() == b"archive"
        assert read_index(builder.index_path) == {
            "Foo::Bar": ("1.0", "A/AL/ALICE/Foo-Bar-1.0.tar.gz"),
            "Foo::Bar::Util": ("undef", "A/AL/ALICE/Foo-Bar-1.0.tar.gz"),
        }
        assert (tmp_path / "dist_surveyor" / "token_packages.txt").read_text() == "Foo-Bar Foo::Bar\n"
        assert report.indexed_packages == 2

    def test_existing_archive_not_downloaded_again(self, tmp_path, foo):
        downloader = FakeDownloader()
        builder = MirrorBuilder(str(tmp_path), downloader=downloader)
        builder.build([ResolvedRelease(foo, ["Foo::Bar"])])

        report = builder.build([ResolvedRelease(foo, ["Foo::Bar"])])

        assert report.skipped == ["Foo-Bar-1.0"]
        assert len(downloader.urls) == 1

    def test_merges_with_previous_runs(self, tmp_path, foo):
        builder = MirrorBuilder(str(tmp_path), downloader=FakeDownloader())
        other = _release("Baz", "0.5", {"Baz": "0.5"}, author="BOB")
        builder.build([ResolvedRelease(foo, ["Foo::Bar"])])

        builder.build([ResolvedRelease(other, ["Baz"])])

        assert set(read_index(builder.index_path)) == {"Baz", "Foo::Bar", "Foo::Bar::Util"}
        tokens = (tmp_path / "dist_surveyor" / "token_packages.txt").read_text().splitlines()
        assert tokens == ["Baz Baz", "Foo-Bar Foo::Bar"]

    def test_failed_download_reported_not_indexed(self, tmp_path, foo):
        downloader = FakeDownloader(fail={foo.archive_url})
        builder = MirrorBuilder(str(tmp_path), downloader=downloader)

        report = builder.build([ResolvedRelease(foo, ["Foo::Bar"])])

        assert report.failed == ["Foo-Bar-1.0"]
        assert read_index(builder.index_path) == {}

    def test_release_without_url_is_failed(self, tmp_path):
        builder = MirrorBuilder(str(tmp_path), downloader=FakeDownloader())
        release = _release("NoUrl", "1.0", {"NoUrl": "1.0"}, url=False)

        report = builder.build([ResolvedRelease(release, ["NoUrl"])])

        assert report.failed == ["NoUrl-1.0"]
