"""Tests for content model extraction."""

import pytest

from web_snapshot.content import extract, extract_file
from web_snapshot.models import FormInput, Heading, Image, Link, ListBlock, Paragraph, Table

SAMPLE = """
<html>
<head>
  <title>  Example Page  </title>
  <meta name="description" content="A sample">
  <meta property="og:title" content="Example">
  <meta name="empty" content="">
  <meta charset="utf-8">
  <style>p { color: red; }</style>
  <script>document.write("<p>hidden</p>")</script>
</head>
<body>
  <h1 id="top" class="hero big">Welcome</h1>
  <h2>  Section  </h2>
  <p class="lead"> First paragraph. </p>
  <p>   </p>
  <noscript><p>Enable JavaScript</p></noscript>
  <a href="/about" title="About us">About</a>
  <a href="/empty"></a>
  <img src="/logo.png" alt="Logo">
  <img src="/spacer.gif">
  <ul class="nav"><li>One</li><li> </li><li>Two</li></ul>
  <ol></ol>
  <table><tr><th>Name</th><th>Age</th></tr><tr><td>Ann</td><td>31</td></tr></table>
  <table><tr><td>   </td></tr></table>
  <table></table>
  <form action="/search" method="POST">
    <input type="text" name="q" placeholder="Search" value="cats">
    <textarea name="notes">hello</textarea>
    <select name="sort"><option value="new">Newest</option><option value="old" selected>Oldest</option></select>
  </form>
  <form action="/nothing"><button>Go</button></form>
</body>
</html>
"""


@pytest.fixture(scope="module")
def model():
    return extract(SAMPLE)


class TestExtraction:
    def test_title_is_trimmed(self, model):
        assert model.title == "Example Page"

    def test_headings_keep_level_id_and_classes(self, model):
        assert model.headings == (
            Heading(level="h1", text="Welcome", id="top", classes="hero big"),
            Heading(level="h2", text="Section"),
        )

    def test_scripts_styles_and_noscript_are_excluded(self, model):
        texts = [paragraph.text for paragraph in model.paragraphs]
        assert texts == ["First paragraph."]
        assert model.paragraphs[0] == Paragraph(text="First paragraph.", classes="lead")

    def test_links_require_text(self, model):
        assert model.links == (Link(href="/about", text="About", title="About us"),)

    def test_images_default_alt_to_empty(self, model):
        assert model.images == (
            Image(src="/logo.png", alt="Logo"),
            Image(src="/spacer.gif", alt=""),
        )

    def test_lists_drop_empty_items_and_empty_lists(self, model):
        assert model.lists == (ListBlock(type="ul", items=("One", "Two"), classes="nav"),)

    def test_tables_need_headers_or_rows(self, model):
        assert model.tables[0] == Table(headers=("Name", "Age"), rows=(("Ann", "31"),))
        assert model.tables[1] == Table(headers=(), rows=(("",),))
        assert len(model.tables) == 2

    def test_forms_need_a_control(self, model):
        assert len(model.forms) == 1
        form = model.forms[0]
        assert form.action == "/search"
        assert form.method == "post"
        assert form.inputs == (
            FormInput(type="text", name="q", placeholder="Search", value="cats"),
            FormInput(type="textarea", name="notes", value="hello"),
            FormInput(type="select", name="sort", value="old"),
        )

    def test_meta_requires_name_and_content(self, model):
        assert model.meta == {"description": "A sample", "og:title": "Example"}


class TestRobustness:
    def test_extraction_is_deterministic(self):
        assert extract(SAMPLE) == extract(SAMPLE)

    def test_malformed_markup_still_yields_a_model(self):
        model = extract("<h1>Open <p>unclosed <a href='/x'>link")
        assert model.title == ""
        assert model.headings[0].level == "h1"
        assert model.links[0].href == "/x"

    def test_empty_input(self):
        model = extract("")
        assert model.title == ""
        assert model.headings == () and model.meta == {}

    def test_extract_file_reads_utf8(self, tmp_path):
        page = tmp_path / "index.html"
        page.write_text("<title>Café</title>", encoding="utf-8")
        assert extract_file(page).title == "Café"
