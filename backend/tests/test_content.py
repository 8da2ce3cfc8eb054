"""Tests for chapter extraction."""

import time

import pytest

from conftest import build_epub, build_opf, chapter_xhtml, scenario_chapters
from novelshelf.core.epub.container import EpubContainer
from novelshelf.core.epub.content import (
    ChapterExtractor,
    ExtractorConfig,
    fallback_title,
    is_chapter_item,
    resolve_html_entities,
)
from novelshelf.core.epub.errors import ResourceError
from novelshelf.core.epub.models import ArchiveEntry, ManifestItem, PackageDocument
from novelshelf.core.epub.package import parse_package


def _extractor(**options) -> ChapterExtractor:
    return ChapterExtractor(ExtractorConfig(**options))


def _parse(body: str, number: int = 1, doctype: bool = False, **options):
    data = chapter_xhtml(None, body, doctype=doctype).encode("utf-8")
    return _extractor(**options).parse_chapter(data, number)


class SlowContainer:
    """Container whose reads finish in reverse spine order."""

    def __init__(self, documents: dict[str, bytes], delays: dict[str, float]):
        self.documents = documents
        self.delays = delays

    def read(self, path: str) -> bytes:
        time.sleep(self.delays.get(path, 0))
        if path not in self.documents:
            raise ResourceError(f"Missing archive entry {path}", ref=path)
        return self.documents[path]

    def entry(self, path: str) -> ArchiveEntry:
        return ArchiveEntry(path, self.read(path))


def _slow_package(count: int) -> tuple[SlowContainer, PackageDocument]:
    manifest = {}
    documents = {}
    delays = {}
    for i in range(1, count + 1):
        path = f"c{i}.xhtml"
        manifest[f"c{i}"] = ManifestItem(f"c{i}", path, path, "application/xhtml+xml")
        documents[path] = chapter_xhtml(f"Title {i}", f"<p>Body {i}</p>").encode("utf-8")
        delays[path] = 0.01 * (count - i)
    package = PackageDocument(title="Slow", manifest=manifest, spine=list(manifest))
    return SlowContainer(documents, delays), package


class TestParseChapter:
    def test_title_from_first_heading(self):
        chapter = _parse("<h2>The Beginning</h2><p>Text</p><h1>Later</h1>", number=4)
        assert chapter.number == 4
        assert chapter.title == "The Beginning"

    def test_heading_is_removed_from_content(self):
        chapter = _parse("<h1>Ch1</h1><p>Hello1</p>")
        assert chapter.content == "<p>Hello1</p>"

    def test_fallback_title_without_heading(self):
        chapter = _parse("<p>No heading here</p>", number=7)
        assert chapter.title == fallback_title(7) == "Chapter 7"
        assert "No heading here" in chapter.content

    def test_empty_heading_is_skipped(self):
        chapter = _parse("<h1>  </h1><h2>Real <em>Title</em></h2><p>x</p>")
        assert chapter.title == "Real Title"

    def test_overlong_heading_is_not_a_title(self):
        chapter = _parse(f"<h1>{'word ' * 20}</h1><p>x</p>", max_title_length=30)
        assert chapter.title == "Chapter 1"

    def test_html_output_has_no_namespaces(self):
        chapter = _parse('<p class="x">One <b>two</b></p>')
        assert chapter.content == '<p class="x">One <b>two</b></p>'
        assert "xmlns" not in chapter.content

    def test_scripts_and_comments_are_stripped(self):
        body = "<p>Keep</p><script>alert(1)</script><!-- note --><style>p {}</style><p>Also</p>"
        chapter = _parse(body)
        assert "alert" not in chapter.content
        assert "note" not in chapter.content
        assert "Keep" in chapter.content and "Also" in chapter.content

    def test_text_format(self):
        body = "<h1>Ch1</h1><p>First   line</p><div>Second<br/>Third</div>"
        chapter = _parse(body, content_format="text")
        assert chapter.title == "Ch1"
        assert chapter.content == "First line\n\nSecond\n\nThird"

    def test_text_format_scenario(self):
        data = chapter_xhtml("Ch1", "<p>Hello1</p>").encode("utf-8")
        chapter = _extractor(content_format="text").parse_chapter(data, 1)
        assert (chapter.title, chapter.content) == ("Ch1", "Hello1")

    def test_tail_text_survives_heading_removal(self):
        chapter = _parse("<h1>Title</h1>loose text<p>para</p>", content_format="text")
        assert chapter.content == "loose text\n\npara"

    def test_broken_markup_is_recovered(self):
        data = b"<html><body><h1>Broken</h1><p>unclosed <b>bold</p></body></html>"
        chapter = ChapterExtractor().parse_chapter(data, 1)
        assert chapter.title == "Broken"
        assert "unclosed" in chapter.content

    def test_plain_html_without_namespace(self):
        data = b"<html><head><title>x</title></head><body><h3>Plain</h3><p>ok</p></body></html>"
        chapter = ChapterExtractor().parse_chapter(data, 2)
        assert chapter.title == "Plain"
        assert chapter.content == "<p>ok</p>"


class TestEscapingAndEntities:
    ESCAPED_BODY = "<h1>Title</h1>Tom &amp; Jerry &lt;script&gt;alert(1)&lt;/script&gt;<p>x</p>"
    ENTITY_BODY = "<h1>Part&nbsp;One</h1><p>Hello&nbsp;world &mdash; bye</p>"

    def test_escaped_text_after_heading_stays_escaped(self):
        chapter = _parse(self.ESCAPED_BODY)
        assert chapter.title == "Title"
        assert "<script>" not in chapter.content
        assert chapter.content == "Tom &amp; Jerry &lt;script&gt;alert(1)&lt;/script&gt;<p>x</p>"

    def test_escaped_text_after_heading_in_text_format(self):
        chapter = _parse(self.ESCAPED_BODY, content_format="text")
        assert chapter.content == "Tom & Jerry <script>alert(1)</script>\n\nx"

    def test_leading_body_text_without_heading(self):
        chapter = _parse("Once &lt;upon&gt; a time<p>x</p>", number=3)
        assert chapter.title == "Chapter 3"
        assert chapter.content == "Once &lt;upon&gt; a time<p>x</p>"

        text = _parse("Once &lt;upon&gt; a time<p>x</p>", content_format="text")
        assert text.content == "Once <upon> a time\n\nx"

    def test_tail_text_after_element_stays_escaped(self):
        chapter = _parse("<p>a</p>1 &lt; 2")
        assert chapter.content == "<p>a</p>1 &lt; 2"

    @pytest.mark.parametrize("doctype", [True, False])
    def test_named_entities_in_title(self, doctype):
        chapter = _parse(self.ENTITY_BODY, doctype=doctype)
        assert chapter.title == "Part One"

    @pytest.mark.parametrize("doctype", [True, False])
    def test_named_entities_in_text_format(self, doctype):
        chapter = _parse(self.ENTITY_BODY, doctype=doctype, content_format="text")
        assert chapter.content == "Hello world — bye"

    def test_named_entities_in_html_format(self):
        chapter = _parse(self.ENTITY_BODY, doctype=True)
        assert chapter.content.startswith("<p>Hello")
        assert chapter.content.endswith("bye</p>")
        assert "&amp;" not in chapter.content

    def test_resolve_html_entities(self):
        data = b"a&nbsp;b &amp; &lt;i&gt; &bogus; &#160; &mdash;"
        assert resolve_html_entities(data) == b"a&#160;b &amp; &lt;i&gt; &bogus; &#160; &#8212;"


class TestChapterItems:
    def test_non_chapter_spine_entries_are_skipped(self):
        extra = '<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>'
        spine = ["nav", "cover-img", "ncx", "ch1", "ch2"]
        opf = build_opf(scenario_chapters(2), nav=True, spine_ids=spine, extra_manifest=extra)
        package = parse_package(opf.encode("utf-8"), "OEBPS")

        assert [i.id for i in ChapterExtractor().chapter_items(package)] == ["ch1", "ch2"]
        kept = _extractor(skip_non_chapter_spine=False).chapter_items(package)
        assert [i.id for i in kept] == spine

    def test_is_chapter_item(self):
        assert is_chapter_item(ManifestItem("a", "a.xhtml", "a.xhtml", "application/xhtml+xml"))
        assert is_chapter_item(ManifestItem("b", "b.html", "b.html", ""))
        assert not is_chapter_item(ManifestItem("c", "c.css", "c.css", "text/css"))
        assert not is_chapter_item(
            ManifestItem("n", "n.xhtml", "n.xhtml", "application/xhtml+xml", properties=("nav",))
        )


@pytest.mark.asyncio
class TestExtractChapters:
    async def test_chapters_numbered_in_spine_order(self):
        data = build_epub(scenario_chapters(3), nav=True)
        with EpubContainer(data) as container:
            package = parse_package(container.read(container.opf_path), container.opf_dir)
            chapters, issues = await ChapterExtractor().extract_chapters(container, package)

        assert [(c.number, c.title) for c in chapters] == [(1, "Ch1"), (2, "Ch2"), (3, "Ch3")]
        assert issues == []

    async def test_order_independent_of_completion_order(self):
        container, package = _slow_package(6)
        chapters, _ = await _extractor(concurrency=6).extract_chapters(container, package)
        assert [c.number for c in chapters] == [1, 2, 3, 4, 5, 6]
        assert [c.title for c in chapters] == [f"Title {i}" for i in range(1, 7)]

    async def test_same_result_for_any_concurrency(self):
        container, package = _slow_package(5)
        serial, _ = await _extractor(concurrency=1).extract_chapters(container, package)
        parallel, _ = await _extractor(concurrency=5).extract_chapters(container, package)
        assert serial == parallel

    async def test_missing_document_degrades(self):
        data = build_epub(scenario_chapters(3), omit=("OEBPS/text/ch2.xhtml",))
        with EpubContainer(data) as container:
            package = parse_package(container.read(container.opf_path), container.opf_dir)
            chapters, issues = await ChapterExtractor().extract_chapters(container, package)

        assert len(chapters) == 3
        assert (chapters[1].number, chapters[1].title, chapters[1].content) == (2, "Chapter 2", "")
        assert chapters[2].title == "Ch3"
        assert [(i.kind, i.ref) for i in issues] == [("resource", "ch2")]

    async def test_entity_heading_in_archive(self):
        chapters = [("ch1.xhtml", "Part&nbsp;Two", "<p>caf&eacute;</p>")]
        data = build_epub(chapters)
        with EpubContainer(data) as container:
            package = parse_package(container.read(container.opf_path), container.opf_dir)
            parsed, issues = await _extractor(content_format="text").extract_chapters(container, package)

        assert (parsed[0].title, parsed[0].content) == ("Part Two", "café")
        assert issues == []
