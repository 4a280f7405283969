"""Tests for resource localization and anchor rewriting."""

import pytest
from bs4 import BeautifulSoup

from conftest import html_page
from web_snapshot.assets import AssetMap, derive_asset_name, localize, page_filenames
from web_snapshot.config import LocalizeConfig

HOME = "https://ex.test/"
ABOUT = "https://ex.test/about"


def soup_of(result, url):
    return BeautifulSoup(result.pages[url].rewritten_markup, "html.parser")


@pytest.fixture
def site_pages():
    return {
        HOME: html_page(
            '<link rel="stylesheet" href="/static/site.css" integrity="sha384-abc" '
            'crossorigin="anonymous">'
            '<link rel="canonical" href="https://ex.test/">'
            '<script src="https://cdn.test/app.js"></script>'
            '<img id="small" src="https://cdn.test/a.png?w=100">'
            '<img id="large" src="https://cdn.test/a.png?w=200">'
            '<img id="inline" src="data:image/png;base64,AAAA">'
            '<img id="missing" src="https://cdn.test/missing.png">'
            '<a id="about" href="/about">About</a>'
            '<a id="team" href="/about#team">Team</a>'
            '<a id="contact" href="/contact#form">Contact</a>'
            '<a id="external" href="https://other.test/">Elsewhere</a>'
            '<a id="jump" href="#top">Top</a>'
        ),
        ABOUT: html_page(
            '<link rel="stylesheet" href="https://ex.test/static/site.css">'
            '<img srcset="https://cdn.test/a.png?w=100 1x, /img/b.png 2x">'
        ),
    }


@pytest.fixture
def asset_routes():
    return {
        "https://ex.test/static/site.css": b"body { color: red; }",
        "https://cdn.test/app.js": b"console.log('hi');",
        "https://cdn.test/a.png?w=100": b"small-png",
        "https://cdn.test/a.png?w=200": b"large-png",
        "https://ex.test/img/b.png": b"b-png",
    }


@pytest.fixture
def localized(site_pages, asset_routes, fake_session, tmp_path):
    session = fake_session(asset_routes)
    result = localize(site_pages, tmp_path, LocalizeConfig(asset_workers=4), session=session)
    return result, session


class TestAssetDownloads:
    def test_shared_asset_downloads_once(self, localized, tmp_path):
        result, session = localized

        assert session.count("https://ex.test/static/site.css") == 1
        assert session.count("https://cdn.test/a.png?w=100") == 1
        home_css = soup_of(result, HOME).find("link", rel="stylesheet")["href"]
        about_css = soup_of(result, ABOUT).find("link", rel="stylesheet")["href"]
        assert home_css == about_css == "assets/site.css"
        assert (tmp_path / "assets" / "site.css").read_bytes() == b"body { color: red; }"

    def test_query_variants_get_distinct_files(self, localized, tmp_path):
        result, _ = localized
        soup = soup_of(result, HOME)
        small = soup.find(id="small")["src"]
        large = soup.find(id="large")["src"]

        assert small != large
        assert small.startswith("assets/a_") and small.endswith(".png")
        assert (tmp_path / small).read_bytes() == b"small-png"
        assert (tmp_path / large).read_bytes() == b"large-png"

    def test_one_outcome_per_distinct_url(self, localized):
        result, _ = localized
        remote_urls = [asset.remote_url for asset in result.assets]

        assert len(remote_urls) == len(set(remote_urls)) == len(result.asset_map)

    def test_failed_download_keeps_local_reference(self, localized):
        result, _ = localized
        outcome = next(
            asset for asset in result.assets if asset.remote_url.endswith("missing.png")
        )

        assert outcome.outcome == "failed"
        assert outcome.error == "HTTP 404"
        assert soup_of(result, HOME).find(id="missing")["src"] == "assets/missing.png"
        assert sum(1 for asset in result.assets if asset.ok) == 5

    def test_data_uri_is_left_in_place(self, localized):
        result, _ = localized
        assert soup_of(result, HOME).find(id="inline")["src"] == "data:image/png;base64,AAAA"

    def test_integrity_attributes_are_dropped(self, localized):
        result, _ = localized
        stylesheet = soup_of(result, HOME).find("link", rel="stylesheet")

        assert "integrity" not in stylesheet.attrs
        assert "crossorigin" not in stylesheet.attrs

    def test_non_asset_links_are_untouched(self, localized):
        result, _ = localized
        assert soup_of(result, HOME).find("link", rel="canonical")["href"] == "https://ex.test/"

    def test_srcset_candidates_are_rewritten(self, localized):
        result, _ = localized
        srcset = soup_of(result, ABOUT).find("img")["srcset"]
        small = soup_of(result, HOME).find(id="small")["src"]

        assert srcset == f"{small} 1x, assets/b.png 2x"

    def test_input_pages_are_not_mutated(self, site_pages, asset_routes, fake_session, tmp_path):
        before = dict(site_pages)
        localize(site_pages, tmp_path, session=fake_session(asset_routes))
        assert site_pages == before


class TestAnchorRewriting:
    def test_crawled_page_points_at_local_file(self, localized):
        result, _ = localized
        soup = soup_of(result, HOME)

        assert soup.find(id="about")["href"] == "about.html"
        assert soup.find(id="team")["href"] == "about.html#team"
        assert result.pages[HOME].filename == "index.html"
        assert result.pages[ABOUT].filename == "about.html"

    def test_uncrawled_page_stays_live_and_flagged(self, localized):
        result, _ = localized
        contact = soup_of(result, HOME).find(id="contact")

        assert contact["href"] == "https://ex.test/contact#form"
        assert contact["data-uncrawled"] == "true"

    def test_cross_domain_and_fragment_links_untouched(self, localized):
        result, _ = localized
        soup = soup_of(result, HOME)

        assert soup.find(id="external")["href"] == "https://other.test/"
        assert "data-uncrawled" not in soup.find(id="external").attrs
        assert soup.find(id="jump")["href"] == "#top"


class TestAssetNaming:
    def test_same_url_same_name(self):
        url = "https://cdn.test/a.png?w=100"
        assert derive_asset_name(url) == derive_asset_name(url)

    def test_query_hash_precedes_extension(self):
        name = derive_asset_name("https://cdn.test/img/photo.jpg?v=3")
        assert name.startswith("photo_") and name.endswith(".jpg")
        assert len(name) == len("photo_") + 8 + len(".jpg")

    def test_unsafe_characters_are_replaced(self):
        assert derive_asset_name("https://cdn.test/my%20file(1).css") == "my_file_1_.css"

    def test_empty_segment_gets_placeholder(self):
        first = derive_asset_name("https://cdn.test/")
        second = derive_asset_name("https://cdn.test/")
        assert first.startswith("asset-") and second.startswith("asset-")

    def test_asset_map_claims_once_and_avoids_collisions(self):
        assets = AssetMap()
        first = assets.claim("https://cdn1.test/logo.png")
        again = assets.claim("https://cdn1.test/logo.png")
        other = assets.claim("https://cdn2.test/logo.png")

        assert first is again
        assert first.local_name == "logo.png"
        assert other.local_name != first.local_name
        assert other.local_name.endswith(".png")
        assert len(assets) == 2


class TestUrlNormalization:
    def test_host_case_and_default_port_share_one_download(self, fake_session, tmp_path):
        pages = {
            HOME: html_page(
                '<img id="upper" src="https://CDN.test/a.png">'
                '<img id="lower" src="https://cdn.test/a.png">'
                '<img id="port" src="https://cdn.test:443/a.png">'
            )
        }
        session = fake_session({"https://cdn.test/a.png": b"png"})
        result = localize(pages, tmp_path, session=session)
        soup = soup_of(result, HOME)

        assert len(result.assets) == 1
        assert session.calls == ["https://cdn.test/a.png"]
        assert {soup.find(id=name)["src"] for name in ("upper", "lower", "port")} == {
            "assets/a.png"
        }


class TestAssetSizeCap:
    def test_oversized_asset_is_failed_and_not_written(self, fake_session, tmp_path):
        pages = {HOME: html_page('<img src="/huge.png">')}
        session = fake_session({"https://ex.test/huge.png": b"x" * 64})
        config = LocalizeConfig(asset_workers=1, max_asset_bytes=16)
        result = localize(pages, tmp_path, config, session=session)

        outcome = result.assets[0]
        assert outcome.outcome == "failed"
        assert "larger than 16 bytes" in outcome.error
        assert not (tmp_path / "assets" / "huge.png").exists()
        assert soup_of(result, HOME).find("img")["src"] == "assets/huge.png"


class TestPageFilenames:
    def test_trailing_slash_variants_do_not_overwrite(self, fake_session, tmp_path):
        pages = {
            HOME: html_page('<a id="bare" href="/about">a</a><a id="slash" href="/about/">b</a>'),
            ABOUT: html_page("<p>one</p>"),
            "https://ex.test/about/": html_page("<p>two</p>"),
        }
        result = localize(pages, tmp_path, session=fake_session())
        bare = result.pages[ABOUT].filename
        slash = result.pages["https://ex.test/about/"].filename
        soup = soup_of(result, HOME)

        assert bare == "about.html"
        assert slash != bare
        assert slash.startswith("about-") and slash.endswith(".html")
        assert soup.find(id="bare")["href"] == bare
        assert soup.find(id="slash")["href"] == slash

    def test_same_page_keeps_one_name(self):
        assert page_filenames([HOME, "https://EX.test/#top"]) == {HOME: "index.html"}
