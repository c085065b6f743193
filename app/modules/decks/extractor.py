"""Source extraction: turn a tagged source into normalized plain text.

Supports raw text, base64 PDF/DOCX uploads and URLs (HTML articles or PDFs).
Parsing of binary documents runs in a worker thread so the event loop is free
while PyMuPDF / python-docx do their work; only the URL fetch is real async I/O.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import ipaddress
import socket
import zipfile
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union
from urllib.parse import urlparse

import fitz  # PyMuPDF
import httpx
import trafilatura
from docx import Document
from docx.opc.exceptions import PackageNotFoundError

from app.core.config import ExtractionSettings, settings
from app.core.logging import get_logger
from app.modules.decks.errors import ExtractionError, ExtractionErrorKind
from app.modules.decks.models import ExtractedDocument, SourceKind

logger = get_logger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
PDF_CONTENT_TYPES = ("application/pdf",)


def normalize_text(text: str) -> str:
    """Unify line endings, drop NUL bytes and trim surrounding whitespace."""
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "").strip()


def decode_base64_payload(content: Union[str, bytes], *, label: str) -> bytes:
    """Decode a base64 upload; raw bytes are passed through untouched.

    Browser uploads often arrive as data URLs (``data:...;base64,<payload>``),
    the prefix is dropped before decoding.
    """
    if isinstance(content, bytes):
        return content
    payload = content.strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ExtractionError(
            ExtractionErrorKind.MALFORMED_DOCUMENT,
            f"The {label} upload is not valid base64 data.",
            original=e,
        )


def read_pdf(data: bytes) -> ExtractedDocument:
    """Extract text page by page; pages are joined by a paragraph break."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        # fitz.FileDataError / EmptyFileError are RuntimeError subclasses
        raise ExtractionError(
            ExtractionErrorKind.MALFORMED_DOCUMENT,
            "The PDF is invalid or corrupted.",
            original=e,
        )

    with doc:
        if doc.needs_pass:
            raise ExtractionError(
                ExtractionErrorKind.ENCRYPTED_DOCUMENT,
                "The PDF is password-protected and cannot be processed.",
            )
        page_count = doc.page_count
        try:
            page_texts = [(page.get_text("text") or "").strip() for page in doc]
        except RuntimeError as e:
            raise ExtractionError(
                ExtractionErrorKind.MALFORMED_DOCUMENT,
                "The PDF could not be read.",
                original=e,
            )

    text = normalize_text("\n\n".join(t for t in page_texts if t))
    if not text:
        # Scanned, image-only PDFs end up here; there is no OCR step.
        raise ExtractionError(
            ExtractionErrorKind.NO_READABLE_TEXT,
            "The PDF appears to have no readable text content.",
            details={"page_count": page_count},
        )
    return ExtractedDocument(text=text, page_count=page_count)


def read_docx(data: bytes) -> ExtractedDocument:
    """Extract raw paragraph and table text, ignoring all styling."""
    try:
        document = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ExtractionError(
            ExtractionErrorKind.MALFORMED_DOCUMENT,
            "The DOCX file is invalid or corrupted.",
            original=e,
        )

    blocks: list[str] = [p.text.strip() for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                blocks.append("\t".join(cells))

    text = normalize_text("\n\n".join(b for b in blocks if b))
    if not text:
        raise ExtractionError(
            ExtractionErrorKind.NO_READABLE_TEXT,
            "The DOCX file appears to have no readable text content.",
        )
    return ExtractedDocument(text=text)


def read_html(html: str, *, url: Optional[str] = None) -> ExtractedDocument:
    """Main-article text of an HTML page with navigation and boilerplate removed."""
    text = trafilatura.extract(
        html,
        url=url,
        include_comments=False,
        include_tables=True,
        favor_recall=True,
    )
    text = normalize_text(text or "")
    if not text:
        raise ExtractionError(
            ExtractionErrorKind.NO_READABLE_TEXT,
            "No readable article content could be extracted from the page.",
        )
    return ExtractedDocument(text=text)


def _is_public(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def _check_url(url: str) -> str:
    """Reject non-http(s) URLs and hosts that are local or literal private IPs."""
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ExtractionError(
            ExtractionErrorKind.FETCH_FAILED,
            "Only absolute http(s) URLs can be fetched.",
        )
    host = parsed.hostname.lower()
    if host == "localhost" or host.endswith(".localhost"):
        raise ExtractionError(
            ExtractionErrorKind.FETCH_FAILED, "Refusing to fetch a local address."
        )
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return url.strip()
    if not _is_public(ip):
        raise ExtractionError(
            ExtractionErrorKind.FETCH_FAILED, "Refusing to fetch a private address."
        )
    return url.strip()


Resolver = Callable[[str], Awaitable[list[str]]]


async def resolve_host(host: str) -> list[str]:
    """All addresses a hostname resolves to."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ExtractionError(
            ExtractionErrorKind.FETCH_FAILED,
            f"Could not resolve host '{host}'.",
            original=e,
        )
    return [info[4][0] for info in infos]


@dataclass
class FetchedResource:
    url: str
    content_type: str
    body: bytes
    encoding: Optional[str] = None

    @property
    def text(self) -> str:
        return self.body.decode(self.encoding or "utf-8", errors="replace")


class SourceExtractor:
    """Dispatches a source to the right reader based on its kind.

    ``http_client`` may be injected (tests use ``httpx.MockTransport``);
    otherwise a short-lived client is opened per fetch. ``resolver`` maps a
    hostname to its addresses and is used to refuse hosts that resolve to
    private networks.
    """

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[ExtractionSettings] = None,
        resolver: Resolver = resolve_host,
    ) -> None:
        self._http_client = http_client
        self.config = config or settings.extraction
        self._resolve = resolver

    async def extract(
        self, source_kind: SourceKind, source_content: Union[str, bytes]
    ) -> ExtractedDocument:
        if source_content is None or (
            isinstance(source_content, str) and not source_content.strip()
        ) or (isinstance(source_content, bytes) and not source_content):
            raise ExtractionError(
                ExtractionErrorKind.EMPTY_INPUT, "The provided source is empty."
            )

        if source_kind is SourceKind.TEXT:
            doc = self._extract_text(source_content)
        elif source_kind is SourceKind.PDF:
            data = decode_base64_payload(source_content, label="PDF")
            doc = await asyncio.to_thread(read_pdf, data)
        elif source_kind is SourceKind.DOCX:
            data = decode_base64_payload(source_content, label="DOCX")
            doc = await asyncio.to_thread(read_docx, data)
        elif source_kind is SourceKind.URL:
            if isinstance(source_content, bytes):
                source_content = source_content.decode("utf-8", errors="replace")
            doc = await self._extract_url(source_content)
        else:
            raise ExtractionError(
                ExtractionErrorKind.UNSUPPORTED_SOURCE_KIND,
                f"Unsupported source kind '{source_kind}'.",
            )

        logger.info(
            "Extracted %d characters from %s source (pages=%s)",
            len(doc.text),
            source_kind.value,
            doc.page_count,
        )
        return doc

    def _extract_text(self, content: Union[str, bytes]) -> ExtractedDocument:
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        text = normalize_text(content)
        if not text:
            raise ExtractionError(
                ExtractionErrorKind.EMPTY_INPUT,
                "The provided text is empty or only whitespace.",
            )
        return ExtractedDocument(text=text)

    async def _extract_url(self, url: str) -> ExtractedDocument:
        resource = await self._fetch(url)
        content_type = resource.content_type
        logger.info(
            "Fetched %s (%s, %d bytes)",
            resource.url,
            content_type or "?",
            len(resource.body),
        )

        if content_type in PDF_CONTENT_TYPES:
            return await asyncio.to_thread(read_pdf, resource.body)
        if content_type in HTML_CONTENT_TYPES:
            return await asyncio.to_thread(read_html, resource.text, url=resource.url)

        logger.warning("Unsupported content type '%s' from %s", content_type, resource.url)
        raise ExtractionError(
            ExtractionErrorKind.UNSUPPORTED_CONTENT_TYPE,
            f"Unsupported content type '{content_type or 'unknown'}' from URL. "
            "Only HTML and PDF URLs are processed.",
            details={"content_type": content_type},
        )

    async def _check_public_host(self, url: str) -> str:
        url = _check_url(url)
        host = urlparse(url).hostname or ""
        try:
            ipaddress.ip_address(host)
            return url
        except ValueError:
            pass
        for address in await self._resolve(host):
            # getaddrinfo may append a scope id to IPv6 link-local addresses
            if not _is_public(ipaddress.ip_address(address.split("%", 1)[0])):
                logger.warning("Host %s resolves to non-public address %s", host, address)
                raise ExtractionError(
                    ExtractionErrorKind.FETCH_FAILED,
                    "Refusing to fetch a private address.",
                )
        return url

    async def _fetch(self, url: str) -> FetchedResource:
        if self._http_client is not None:
            return await self._fetch_with(self._http_client, url)
        async with httpx.AsyncClient(timeout=self.config.fetch_timeout_seconds) as client:
            return await self._fetch_with(client, url)

    async def _fetch_with(self, client: httpx.AsyncClient, url: str) -> FetchedResource:
        """GET ``url``, following redirects by hand so every hop is checked."""
        headers = {"User-Agent": self.config.fetch_user_agent}
        limit = self.config.fetch_max_bytes

        for _ in range(self.config.fetch_max_redirects + 1):
            url = await self._check_public_host(url)
            try:
                async with client.stream(
                    "GET",
                    url,
                    headers=headers,
                    follow_redirects=False,
                    timeout=self.config.fetch_timeout_seconds,
                ) as response:
                    if response.is_redirect:
                        url = str(response.url.join(response.headers["location"]))
                        logger.info("Following redirect to %s", url)
                        continue

                    if not response.is_success:
                        raise ExtractionError(
                            ExtractionErrorKind.FETCH_FAILED,
                            f"HTTP error {response.status_code} fetching URL",
                            details={"status_code": response.status_code},
                        )

                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > limit:
                        raise _too_large(int(declared))
                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > limit:
                            raise _too_large(len(body))

                    content_type = (
                        response.headers.get("content-type", "")
                        .split(";", 1)[0]
                        .strip()
                        .lower()
                    )
                    return FetchedResource(
                        url=url,
                        content_type=content_type,
                        body=bytes(body),
                        encoding=response.charset_encoding,
                    )
            except httpx.TimeoutException as e:
                raise ExtractionError(
                    ExtractionErrorKind.FETCH_FAILED,
                    f"Timed out fetching URL: {url}",
                    original=e,
                )
            except httpx.HTTPError as e:
                raise ExtractionError(
                    ExtractionErrorKind.FETCH_FAILED,
                    f"Failed to fetch URL: {url}",
                    original=e,
                )

        raise ExtractionError(
            ExtractionErrorKind.FETCH_FAILED,
            f"Too many redirects (more than {self.config.fetch_max_redirects}).",
        )


def _too_large(size: int) -> ExtractionError:
    return ExtractionError(
        ExtractionErrorKind.FETCH_FAILED,
        "The fetched resource is too large to process.",
        details={"bytes": size},
    )


async def extract(
    source_kind: SourceKind, source_content: Union[str, bytes]
) -> ExtractedDocument:
    """Module-level shortcut using a default extractor."""
    return await SourceExtractor().extract(source_kind, source_content)
