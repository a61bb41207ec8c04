"""arXiv search gateway: query the Atom API and cache results per topic."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import date

import requests

from errors import MalformedResponse, UpstreamUnavailable
from models import PaperRecord
from paper_store import PaperStore, normalize_topic

ARXIV_API_URL = "http://export.arxiv.org/api/query"
REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_MAX_RESULTS = 5

ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}

LOGGER = logging.getLogger(__name__)


class ArxivSearchGateway:
    """Search arXiv by topic and store the hits as that topic's partition."""

    def __init__(
        self,
        store: PaperStore,
        api_url: str = ARXIV_API_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.api_url = api_url
        self.timeout = timeout

    def search(self, topic: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[str]:
        """Search arXiv for ``topic`` and return the paper ids in feed order.

        Args:
            topic: Free-text topic; also names the partition the results go to.
            max_results: Number of entries to request, at least 1.

        Raises:
            ValueError: Empty topic or max_results < 1 (checked before any request).
            UpstreamUnavailable: The API could not be reached or returned an error status.
            MalformedResponse: The body is not a parseable Atom feed.
            OSError: The partition could not be written.
        """
        topic_key = normalize_topic(topic)
        if isinstance(max_results, bool) or not isinstance(max_results, int):
            raise ValueError(f"max_results must be an integer, got {max_results!r}")
        if max_results < 1:
            raise ValueError(f"max_results must be >= 1, got {max_results}")

        xml_text = self._fetch_feed(topic.strip(), max_results)
        records = parse_feed(xml_text)

        self.store.write_partition(topic_key, {record.paper_id: record for record in records})
        LOGGER.info(
            "arXiv search: topic=%s requested=%s returned=%s",
            topic_key,
            max_results,
            len(records),
        )
        return [record.paper_id for record in records]

    def _fetch_feed(self, topic: str, max_results: int) -> str:
        params = {
            "search_query": f"all:{topic}",
            "start": 0,
            "max_results": max_results,
            "sortBy": "relevance",
        }
        try:
            response = requests.get(self.api_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"arXiv request failed for topic={topic!r}: {exc}") from exc
        return response.text


def parse_feed(xml_text: str) -> list[PaperRecord]:
    """Parse an arXiv Atom feed into records, preserving entry order."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise MalformedResponse(f"arXiv feed is not valid XML: {exc}") from exc

    if root.tag != f"{{{ATOM_NS['atom']}}}feed":
        raise MalformedResponse(f"Unexpected arXiv feed root element: {root.tag}")

    records: list[PaperRecord] = []
    seen: set[str] = set()
    for entry in root.findall("atom:entry", ATOM_NS):
        record = _entry_to_record(entry)
        if record.paper_id in seen:
            LOGGER.debug("Dropping duplicate feed entry paper_id=%s", record.paper_id)
            continue
        seen.add(record.paper_id)
        records.append(record)
    return records


def _entry_to_record(entry: ET.Element) -> PaperRecord:
    id_url = _read_text(entry, "atom:id")
    paper_id = id_url.rstrip("/").split("/")[-1]
    if not paper_id:
        raise MalformedResponse("arXiv feed entry has no id")

    authors = [
        name
        for name in (_read_text(node, "atom:name") for node in entry.findall("atom:author", ATOM_NS))
        if name
    ]

    return PaperRecord(
        paper_id=paper_id,
        title=_read_text(entry, "atom:title"),
        summary=_read_text(entry, "atom:summary"),
        authors=tuple(authors),
        published=_parse_published(_read_text(entry, "atom:published"), paper_id),
        pdf_url=_extract_pdf_link(entry),
    )


def _read_text(node: ET.Element, path: str) -> str:
    found = node.find(path, ATOM_NS)
    if found is None or found.text is None:
        return ""
    return " ".join(found.text.split())


def _parse_published(text: str, paper_id: str) -> date:
    try:
        return date.fromisoformat(text.split("T")[0])
    except ValueError as exc:
        raise MalformedResponse(
            f"arXiv entry {paper_id} has an invalid published date: {text!r}"
        ) from exc


def _extract_pdf_link(entry: ET.Element) -> str:
    for link in entry.findall("atom:link", ATOM_NS):
        title = link.attrib.get("title", "")
        link_type = link.attrib.get("type", "")
        if title.lower() == "pdf" or link_type == "application/pdf":
            return link.attrib.get("href", "")
    return ""
