"""Document Store Client: read access to documents, with first-use seeding."""

from __future__ import annotations

import logging

from flagmark.config import get_settings
from flagmark.db.engine import get_session
from flagmark.db.models import Document
from flagmark.errors import DocumentNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT = """\
<h1>Service Agreement</h1>
<p>This agreement is entered into between the <strong>Provider</strong> and the
<strong>Client</strong> on the date of signing.</p>
<h2>1. Scope of Work</h2>
<p>The Provider shall deliver the services described in Schedule A. Any work
outside that schedule requires a written change request.</p>
<h2>2. Payment</h2>
<p>Invoices are payable within <em>thirty (30) days</em> of receipt. Late
payments accrue interest at 1.5% per month.</p>
<h2>3. Termination</h2>
<p>Either party may terminate this agreement with sixty days' written notice.</p>
"""


def _seed_content() -> str:
    path = get_settings().app.seed_content_path
    if path is not None:
        return path.read_text(encoding="utf-8")
    return DEFAULT_CONTENT


async def create_document(content: str, document_id: int | None = None) -> Document:
    """Create a new document.

    Args:
        content: The document HTML.
        document_id: Explicit id, or None to auto-assign.

    Returns:
        The created Document with generated ID.
    """
    async with get_session() as session:
        document = Document(id=document_id, content=content)
        session.add(document)
        await session.flush()
        await session.refresh(document)
        logger.info("Created document %s (%d chars)", document.id, len(content))
        return document


async def find_document(document_id: int) -> Document | None:
    """Get a document by ID, or None if it does not exist."""
    async with get_session() as session:
        return await session.get(Document, document_id)


async def get_document(document_id: int) -> Document:
    """Get a document, seeding the default document on first access.

    Raises:
        DocumentNotFoundError: If the document does not exist and
            *document_id* is not the configured default document.
    """
    document = await find_document(document_id)
    if document is not None:
        return document

    if document_id != get_settings().app.default_document_id:
        raise DocumentNotFoundError(document_id)

    logger.info("Seeding default document %s", document_id)
    return await create_document(_seed_content(), document_id=document_id)
