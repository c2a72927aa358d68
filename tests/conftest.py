"""
Shared test fixtures: temporary database and blob store, generated PDFs,
a scripted page extractor and an in-process API client.
"""

import asyncio
from collections.abc import Callable

import fitz
import httpx
import pytest

from notesplit.api.config import DatabaseSettings, ExtractorSettings, JobSettings, Settings, StorageSettings
from notesplit.composition_root import ServiceContainer, build_services
from notesplit.core.database import session as session_module
from notesplit.core.extraction.base import (
    BasePageExtractor,
    PageClassification,
    PageFields,
    PageRequest,
    PageRole,
)
from notesplit.core.extraction.resilience import ResilientExtractor


# ============================================================================
# PDFs
# ============================================================================
def make_pdf(page_count: int, label: str = "Page") -> bytes:
    """A PDF whose page ``n`` carries the text ``"<label> <n>"``."""
    doc = fitz.open()
    for number in range(1, page_count + 1):
        page = doc.new_page()
        page.insert_text((72, 72), f"{label} {number}")
    data = doc.tobytes()
    doc.close()
    return data


def page_texts(data: bytes) -> list[str]:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text("text").strip() for page in doc]


@pytest.fixture
def pdf_factory() -> Callable[..., bytes]:
    return make_pdf


@pytest.fixture
def read_pages() -> Callable[[bytes], list[str]]:
    return page_texts


# ============================================================================
# Extractor
# ============================================================================
class ScriptedExtractor(BasePageExtractor):
    """
    Page extractor driven by a script instead of a model.

    Pages listed in ``starts`` are start pages with fields
    ``FS-<page>`` / ``Acme``; every other page is a continuation.
    ``failures`` maps a page to the exception raised for it on every call.
    When ``gate`` is set, calls block until it is released; with
    ``held_label`` only pages whose text starts with that label block.
    """

    def __init__(
        self,
        starts: set[int] | None = None,
        failures: dict[int, Exception] | None = None,
        gate: asyncio.Event | None = None,
        held_label: str | None = None,
    ):
        self.starts = starts if starts is not None else {1}
        self.failures = failures or {}
        self.gate = gate
        self.held_label = held_label
        self.calls: list[int] = []

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def wants_image(self) -> bool:
        return False

    async def classify(self, request: PageRequest) -> PageClassification:
        page = request.page_number
        self.calls.append(page)
        if self.gate is not None and self._held(request):
            await self.gate.wait()
        if page in self.failures:
            raise self.failures[page]
        if page in self.starts:
            return PageClassification(
                role=PageRole.START,
                fields=PageFields(delivery_note_number=f"FS-{page}", company_name="Acme"),
                confidence=0.9,
            )
        return PageClassification(role=PageRole.CONTINUATION, confidence=0.8)

    def _held(self, request: PageRequest) -> bool:
        if self.held_label is None:
            return True
        return (request.payload.text or "").startswith(self.held_label)


def resilient(extractor: BasePageExtractor, **overrides) -> ResilientExtractor:
    """Wrap an extractor with the production policy minus the backoff delay."""
    options = dict(max_concurrency=4, timeout_seconds=5.0, max_retries=3, retry_base_seconds=0)
    options.update(overrides)
    return ResilientExtractor(extractor, **options)


@pytest.fixture
def scripted_extractor() -> ScriptedExtractor:
    return ScriptedExtractor(starts={1, 4})


@pytest.fixture
def make_extractor() -> type[ScriptedExtractor]:
    return ScriptedExtractor


@pytest.fixture
def wrap_extractor() -> Callable[..., ResilientExtractor]:
    return resilient


# ============================================================================
# Settings, database and services
# ============================================================================
@pytest.fixture
def app_settings(tmp_path) -> Settings:
    return Settings(
        db=DatabaseSettings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'notesplit.db'}"),
        storage=StorageSettings(blob_dir=tmp_path / "blobs"),
        extractor=ExtractorSettings(mode="text", retry_base_seconds=0),
        jobs=JobSettings(timeout_seconds=60, max_concurrent_files=2),
    )


@pytest.fixture
async def database(app_settings):
    """Configure the engine against a fresh SQLite file and create the schema."""
    session_module.configure_database(app_settings.db.database_url)
    await session_module.create_schema()
    yield session_module.get_session_maker()
    await session_module.close_database()


@pytest.fixture
async def services(database, app_settings, scripted_extractor) -> ServiceContainer:
    container = build_services(app_settings, extractor=resilient(scripted_extractor))
    yield container
    await container.jobs.shutdown()


# ============================================================================
# HTTP client
# ============================================================================
@pytest.fixture
async def api_app(app_settings, scripted_extractor):
    from notesplit.api.main import create_app

    app = create_app(app_settings, extractor=resilient(scripted_extractor))
    async with app.router.lifespan_context(app):
        yield app


@pytest.fixture
async def client(api_app) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture(autouse=True)
def reset_database_state():
    """Force the next test to build its own engine on its own event loop."""
    yield
    session_module._engine = None
    session_module._async_session_maker = None
    session_module._db_config = {}


@pytest.fixture
async def container_factory(database, app_settings):
    """Build service containers around custom extractors."""
    built: list[ServiceContainer] = []

    def factory(extractor: BasePageExtractor, **overrides) -> ServiceContainer:
        container = build_services(app_settings, extractor=resilient(extractor, **overrides))
        built.append(container)
        return container

    yield factory
    for container in built:
        await container.jobs.shutdown()
