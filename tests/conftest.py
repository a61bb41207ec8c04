from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

ATOM_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n<feed xmlns="http://www.w3.org/2005/Atom">\n'


def _entry_xml(paper_id: str, with_pdf: bool = True, authors: tuple[str, ...] = ("Ada Lovelace", "Alan Turing")) -> str:
    author_xml = "".join(f"<author><name>{name}</name></author>" for name in authors)
    pdf_xml = (
        f'<link title="pdf" href="http://arxiv.org/pdf/{paper_id}v1" rel="related" type="application/pdf"/>'
        if with_pdf
        else ""
    )
    return (
        "<entry>"
        f"<id>http://arxiv.org/abs/{paper_id}v1</id>"
        "<published>2024-01-15T18:59:59Z</published>"
        f"<title>\n  Paper {paper_id}:\n  A Study\n</title>"
        f"<summary>  We study {paper_id}.\n  Results follow.  </summary>"
        f"{author_xml}"
        f'<link href="http://arxiv.org/abs/{paper_id}v1" rel="alternate" type="text/html"/>'
        f"{pdf_xml}"
        "</entry>"
    )


@pytest.fixture
def make_feed() -> Callable[..., str]:
    """Build a minimal arXiv Atom feed; entry ids keep the given order."""

    def _make(paper_ids: list[str], with_pdf: bool = True) -> str:
        entries = "".join(_entry_xml(paper_id, with_pdf=with_pdf) for paper_id in paper_ids)
        return f"{ATOM_HEADER}<title>arXiv Query</title>{entries}</feed>"

    return _make


@pytest.fixture
def feed_response() -> Callable[[str], MagicMock]:
    """Return a mock requests.Response carrying the given body."""

    def _make(body: str) -> MagicMock:
        response = MagicMock()
        response.text = body
        response.raise_for_status.return_value = None
        return response

    return _make
