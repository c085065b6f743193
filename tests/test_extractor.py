import base64
import io

import fitz
import httpx
import pytest
from docx import Document

from app.core.config import ExtractionSettings
from app.modules.decks.errors import ExtractionError, ExtractionErrorKind
from app.modules.decks.extractor import (
    SourceExtractor,
    decode_base64_payload,
    normalize_text,
)
from app.modules.decks.models import SourceKind


ARTICLE_HTML = """
<html>
  <head><title>Mitochondria</title></head>
  <body>
    <nav>Home | About | Contact</nav>
    <article>
      <h1>The powerhouse of the cell</h1>
      <p>Mitochondria are membrane-bound organelles that generate most of the
      chemical energy needed to power the biochemical reactions of the cell.</p>
      <p>The energy is stored in a small molecule called adenosine triphosphate,
      usually abbreviated as ATP, which is produced during cellular respiration.</p>
      <p>Mitochondria contain their own small chromosomes and are thought to have
      originated from free-living bacteria through endosymbiosis.</p>
    </article>
    <footer>Copyright 2024</footer>
  </body>
</html>
"""


def make_pdf(*pages: str, encrypt: bool = False) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    if encrypt:
        data = doc.tobytes(
            encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="secret"
        )
    else:
        data = doc.tobytes()
    doc.close()
    return data


def make_docx(*paragraphs: str, table: list[list[str]] | None = None) -> bytes:
    document = Document()
    for p in paragraphs:
        document.add_paragraph(p)
    if table:
        t = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                t.cell(r, c).text = value
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


PUBLIC_ADDRESSES = {"example.com": ["93.184.216.34"], "cdn.example.org": ["151.101.1.69"]}


async def fake_resolver(host: str) -> list[str]:
    return PUBLIC_ADDRESSES.get(host, ["10.0.0.7"])


def extractor_for(handler, **config) -> SourceExtractor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceExtractor(
        http_client=client, config=ExtractionSettings(**config), resolver=fake_resolver
    )


def test_normalize_text_unifies_line_endings():
    assert normalize_text("  a\r\nb\rc\x00  ") == "a\nb\nc"


def test_decode_base64_strips_data_url_prefix():
    raw = b"%PDF-1.7 fake"
    assert decode_base64_payload("data:application/pdf;base64," + b64(raw), label="PDF") == raw
    assert decode_base64_payload(raw, label="PDF") == raw


async def test_text_source_is_returned_unchanged():
    doc = await SourceExtractor().extract(SourceKind.TEXT, "  The sky is blue.  ")
    assert doc.text == "The sky is blue."
    assert doc.page_count is None


@pytest.mark.parametrize("content", ["", "   \n\t "])
async def test_blank_source_is_empty_input(content):
    with pytest.raises(ExtractionError) as exc:
        await SourceExtractor().extract(SourceKind.TEXT, content)
    assert exc.value.kind is ExtractionErrorKind.EMPTY_INPUT


async def test_pdf_pages_are_joined():
    data = make_pdf("Photosynthesis happens in chloroplasts.", "Plants release oxygen.")
    doc = await SourceExtractor().extract(SourceKind.PDF, b64(data))
    assert doc.page_count == 2
    assert "chloroplasts" in doc.text
    assert "oxygen" in doc.text
    assert "\n\n" in doc.text


async def test_pdf_without_text_has_no_readable_text():
    with pytest.raises(ExtractionError) as exc:
        await SourceExtractor().extract(SourceKind.PDF, b64(make_pdf("", "")))
    assert exc.value.kind is ExtractionErrorKind.NO_READABLE_TEXT


async def test_encrypted_pdf_is_rejected():
    data = make_pdf("Top secret notes.", encrypt=True)
    with pytest.raises(ExtractionError) as exc:
        await SourceExtractor().extract(SourceKind.PDF, b64(data))
    assert exc.value.kind is ExtractionErrorKind.ENCRYPTED_DOCUMENT


async def test_garbage_pdf_is_malformed():
    with pytest.raises(ExtractionError) as exc:
        await SourceExtractor().extract(SourceKind.PDF, b64(b"this is not a pdf at all"))
    assert exc.value.kind is ExtractionErrorKind.MALFORMED_DOCUMENT


async def test_docx_paragraphs_and_tables():
    data = make_docx(
        "Water boils at 100 degrees Celsius.",
        "",
        "Ice melts at 0 degrees Celsius.",
        table=[["Element", "Symbol"], ["Gold", "Au"]],
    )
    doc = await SourceExtractor().extract(SourceKind.DOCX, b64(data))
    assert doc.text.startswith("Water boils at 100 degrees Celsius.")
    assert "Ice melts" in doc.text
    assert "Gold\tAu" in doc.text


async def test_empty_docx_has_no_readable_text():
    with pytest.raises(ExtractionError) as exc:
        await SourceExtractor().extract(SourceKind.DOCX, b64(make_docx()))
    assert exc.value.kind is ExtractionErrorKind.NO_READABLE_TEXT


async def test_invalid_docx_is_malformed():
    with pytest.raises(ExtractionError) as exc:
        await SourceExtractor().extract(SourceKind.DOCX, b64(b"PK not really a zip"))
    assert exc.value.kind is ExtractionErrorKind.MALFORMED_DOCUMENT


async def test_url_html_article():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "deckgen" in request.headers["user-agent"]
        return httpx.Response(
            200,
            headers={"content-type": "text/html; charset=utf-8"},
            text=ARTICLE_HTML,
        )

    doc = await extractor_for(handler).extract(
        SourceKind.URL, "https://example.com/biology/mitochondria"
    )
    assert "adenosine triphosphate" in doc.text


async def test_url_pdf():
    pdf = make_pdf("Newton described three laws of motion.")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-type": "application/pdf"}, content=pdf
        )

    doc = await extractor_for(handler).extract(SourceKind.URL, "https://example.com/a.pdf")
    assert "three laws of motion" in doc.text
    assert doc.page_count == 1


async def test_url_unsupported_content_type():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-type": "image/png"}, content=b"\x89PNG"
        )

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler).extract(SourceKind.URL, "https://example.com/x.png")
    assert exc.value.kind is ExtractionErrorKind.UNSUPPORTED_CONTENT_TYPE
    assert exc.value.details == {"content_type": "image/png"}


async def test_url_http_error_is_fetch_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler).extract(SourceKind.URL, "https://example.com/missing")
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED
    assert exc.value.details == {"status_code": 404}


async def test_url_network_error_is_fetch_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler).extract(SourceKind.URL, "https://example.com/")
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED


@pytest.mark.parametrize(
    "url",
    [
        "ftp://example.com/file.txt",
        "http://localhost:8000/admin",
        "http://127.0.0.1/",
        "http://10.0.0.5/internal",
        "not a url",
    ],
)
async def test_url_rejects_non_public_targets(url):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request should be made")

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler).extract(SourceKind.URL, url)
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED


async def test_redirect_to_private_address_is_refused():
    fetched = []

    def handler(request: httpx.Request) -> httpx.Response:
        fetched.append(str(request.url))
        if request.url.host == "example.com":
            return httpx.Response(302, headers={"location": "http://127.0.0.1/admin"})
        return httpx.Response(
            200, headers={"content-type": "text/html"}, text=ARTICLE_HTML
        )

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler).extract(SourceKind.URL, "https://example.com/x")
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED
    assert fetched == ["https://example.com/x"]


async def test_public_redirect_is_followed():
    fetched = []

    def handler(request: httpx.Request) -> httpx.Response:
        fetched.append(str(request.url))
        if request.url.host == "example.com":
            return httpx.Response(
                301, headers={"location": "https://cdn.example.org/article"}
            )
        return httpx.Response(
            200, headers={"content-type": "text/html"}, text=ARTICLE_HTML
        )

    doc = await extractor_for(handler).extract(SourceKind.URL, "https://example.com/x")
    assert "adenosine triphosphate" in doc.text
    assert fetched == ["https://example.com/x", "https://cdn.example.org/article"]


async def test_relative_redirect_loop_is_bounded():
    fetched = []

    def handler(request: httpx.Request) -> httpx.Response:
        fetched.append(str(request.url))
        return httpx.Response(302, headers={"location": "/again"})

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler, FETCH_MAX_REDIRECTS=2).extract(
            SourceKind.URL, "https://example.com/start"
        )
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED
    assert len(fetched) == 3


async def test_hostname_resolving_to_private_network_is_refused():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request should be made")

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler).extract(SourceKind.URL, "https://intranet.corp/wiki")
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED


async def test_oversized_body_is_refused():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-type": "text/html"}, content=b"x" * 2048
        )

    with pytest.raises(ExtractionError) as exc:
        await extractor_for(handler, FETCH_MAX_BYTES=1024).extract(
            SourceKind.URL, "https://example.com/big"
        )
    assert exc.value.kind is ExtractionErrorKind.FETCH_FAILED
    assert exc.value.details["bytes"] > 1024


async def test_extraction_is_idempotent():
    pdf = make_pdf("Newton described three laws of motion.", "Force equals mass times acceleration.")
    docx = make_docx("Water boils at 100 degrees Celsius.", table=[["Gold", "Au"]])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-type": "text/html"}, text=ARTICLE_HTML
        )

    extractor = extractor_for(handler)
    sources = [
        (SourceKind.TEXT, "  The sky is blue.\r\n"),
        (SourceKind.PDF, b64(pdf)),
        (SourceKind.DOCX, b64(docx)),
        (SourceKind.URL, "https://example.com/biology"),
    ]
    for kind, content in sources:
        first = await extractor.extract(kind, content)
        second = await extractor.extract(kind, content)
        assert first == second, kind
