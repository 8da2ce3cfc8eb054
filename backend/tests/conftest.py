"""Shared fixtures: in-memory EPUB builder, databases and fake collaborators.

Environment variables are set before any novelshelf import so the
application settings never point at a real database or storage directory.
"""

import io
import os
import tempfile
import zipfile
from typing import Optional

import pytest
import pytest_asyncio

TEST_DATA_DIR = tempfile.mkdtemp(prefix="novelshelf-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DATA_DIR}/app.db"
os.environ["STORAGE_DIR"] = os.path.join(TEST_DATA_DIR, "storage")
os.environ["STORAGE_RETRY_DELAY"] = "0"
os.environ.pop("API_AUTH_TOKEN", None)

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from novelshelf.models.database.base import enable_sqlite_savepoints, init_db  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

NAV_XHTML = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>Contents</title></head>
<body><nav epub:type="toc"><h1>Contents</h1><ol><li><a href="ch1.xhtml">One</a></li></ol></nav></body>
</html>
"""


XHTML11_DOCTYPE = (
    '<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.1//EN" '
    '"http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd">\n'
)


def chapter_xhtml(heading: Optional[str], body: str, doctype: bool = False) -> str:
    """An XHTML chapter document, optionally with the XHTML 1.1 DOCTYPE."""
    heading_html = f"<h1>{heading}</h1>" if heading else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        + (XHTML11_DOCTYPE if doctype else "")
        + '<html xmlns="http://www.w3.org/1999/xhtml">\n'
        "<head><title>ignored</title></head>\n"
        f"<body>{heading_html}{body}</body>\n"
        "</html>\n"
    )


def scenario_chapters(count: int = 3) -> list[tuple[str, str, str]]:
    return [(f"ch{i}.xhtml", f"Ch{i}", f"<p>Hello{i}</p>") for i in range(1, count + 1)]


def build_opf(
    chapters: list[tuple[str, Optional[str], str]],
    title: Optional[str] = "Test Novel",
    author: Optional[str] = "Test Author",
    description: Optional[str] = "A novel used in tests.",
    cover: Optional[bytes] = PNG_BYTES,
    cover_style: Optional[str] = "property",
    cover_media_type: str = "image/png",
    nav: bool = False,
    spine_ids: Optional[list[str]] = None,
    extra_manifest: str = "",
) -> str:
    meta = []
    if title is not None:
        meta.append(f"<dc:title>{title}</dc:title>")
    if author is not None:
        meta.append(f"<dc:creator>{author}</dc:creator>")
    if description is not None:
        meta.append(f"<dc:description>{description}</dc:description>")
    meta.append("<dc:language>en</dc:language>")

    items = []
    if cover is not None:
        props = ' properties="cover-image"' if cover_style == "property" else ""
        if cover_style == "meta":
            meta.append('<meta name="cover" content="cover-img"/>')
        items.append(
            f'<item id="cover-img" href="images/cover.png" media-type="{cover_media_type}"{props}/>'
        )
    if nav:
        items.append('<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>')
    for index, (filename, _heading, _body) in enumerate(chapters, start=1):
        items.append(f'<item id="ch{index}" href="text/{filename}" media-type="application/xhtml+xml"/>')
    items.append(extra_manifest)

    if spine_ids is None:
        spine_ids = (["nav"] if nav else []) + [f"ch{i}" for i in range(1, len(chapters) + 1)]
    itemrefs = "".join(f'<itemref idref="{item_id}"/>' for item_id in spine_ids)

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">\n'
        '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">'
        + "".join(meta)
        + "</metadata>\n<manifest>"
        + "".join(items)
        + "</manifest>\n<spine>"
        + itemrefs
        + "</spine>\n</package>\n"
    )


def build_epub(
    chapters: Optional[list[tuple[str, Optional[str], str]]] = None,
    opf: Optional[str] = None,
    opf_path: str = "OEBPS/content.opf",
    container: Optional[str] = None,
    include_container: bool = True,
    omit: tuple[str, ...] = (),
    extra_files: Optional[dict[str, bytes]] = None,
    **opf_options,
) -> bytes:
    """Build an EPUB archive in memory.

    ``chapters`` is a list of (file name, heading, body html); files live in
    ``OEBPS/text/``. ``omit`` lists archive paths to leave out so tests can
    simulate missing resources.
    """
    if chapters is None:
        chapters = scenario_chapters()
    if opf is None:
        opf = build_opf(chapters, **opf_options)

    opf_dir = opf_path.rsplit("/", 1)[0] + "/" if "/" in opf_path else ""
    files: dict[str, bytes] = {
        "mimetype": b"application/epub+zip",
        opf_path: opf.encode("utf-8"),
        f"{opf_dir}images/cover.png": PNG_BYTES if opf_options.get("cover", PNG_BYTES) is not None else b"",
        f"{opf_dir}nav.xhtml": NAV_XHTML.encode("utf-8"),
    }
    if include_container:
        files["META-INF/container.xml"] = (container or CONTAINER_XML.format(opf_path=opf_path)).encode("utf-8")
    for filename, heading, body in chapters:
        files[f"{opf_dir}text/{filename}"] = chapter_xhtml(heading, body).encode("utf-8")
    files.update(extra_files or {})

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for path, data in files.items():
            if path in omit:
                continue
            archive.writestr(path, data)
    return buffer.getvalue()


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeChapter:
    """Stand-in for a stored chapter row."""

    def __init__(self, id: str, novel_id: str, number: int, title: str, **fields):
        self.id = id
        self.novel_id = novel_id
        self.number = number
        self.title = title
        self.content_en = fields.get("content_en")
        self.content_id = fields.get("content_id")
        self.epub_en_url = fields.get("epub_en_url")
        self.epub_id_url = fields.get("epub_id_url")


class FakeContentStore:
    """In-memory ContentStore that records every call."""

    def __init__(self, fail_numbers: tuple[int, ...] = ()):
        self.books: dict[str, dict] = {}
        self.chapters: dict[str, FakeChapter] = {}
        self.calls: list[str] = []
        self.fail_numbers = set(fail_numbers)
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    async def create_book(self, fields):
        self.calls.append("create_book")
        novel_id = self._new_id("novel")
        self.books[novel_id] = dict(fields)
        return novel_id

    async def update_book(self, novel_id, fields):
        self.calls.append("update_book")
        if novel_id not in self.books:
            raise LookupError(f"Novel {novel_id} not found")
        self.books[novel_id].update(fields)
        return self.books[novel_id]

    async def create_chapters(self, novel_id, chapters):
        self.calls.append("create_chapters")
        rows = []
        for new in chapters:
            if new.number in self.fail_numbers:
                raise RuntimeError(f"insert of chapter {new.number} rejected")
            if any(c.novel_id == novel_id and c.number == new.number for c in self.chapters.values()):
                raise RuntimeError("duplicate (novel_id, number)")
            row = FakeChapter(self._new_id("chapter"), novel_id, new.number, new.title, **new.fields)
            self.chapters[row.id] = row
            rows.append(row)
        return rows

    async def update_chapter(self, chapter_id, fields):
        self.calls.append("update_chapter")
        chapter = self.chapters[chapter_id]
        if chapter.number in self.fail_numbers:
            raise RuntimeError(f"update of chapter {chapter.number} rejected")
        for name, value in fields.items():
            setattr(chapter, name, value)
        return chapter

    async def list_chapters_by_book(self, novel_id):
        self.calls.append("list_chapters_by_book")
        rows = [c for c in self.chapters.values() if c.novel_id == novel_id]
        return sorted(rows, key=lambda c: c.number)

    def seed(self, novel_id: str, number: int, title: str, **fields) -> FakeChapter:
        row = FakeChapter(self._new_id("chapter"), novel_id, number, title, **fields)
        self.chapters[row.id] = row
        return row


class FakeObjectStorage:
    """In-memory ObjectStorage; ``failures`` uploads fail before one succeeds."""

    def __init__(self, failures: int = 0):
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.failures = failures
        self.attempts = 0

    async def upload_blob(self, path, data, mime_type):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("storage unavailable")
        self.blobs[path] = (data, mime_type)
        return f"https://cdn.example.test/{path}"


@pytest.fixture
def fake_store():
    return FakeContentStore()


@pytest.fixture
def fake_storage():
    return FakeObjectStorage()


@pytest_asyncio.fixture
async def db_session():
    """AsyncSession on a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    await init_db(engine)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()
