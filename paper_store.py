"""Topic-partitioned JSON cache of paper metadata."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Iterator, Mapping
from json import JSONDecodeError
from pathlib import Path

from models import PaperRecord

PARTITION_FILENAME = "papers_info.json"

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# Raised by a partition file that exists but cannot be loaded.
PARTITION_READ_ERRORS = (OSError, JSONDecodeError, ValueError, KeyError, TypeError)


def normalize_topic(topic: str) -> str:
    """Map a free-text topic to its partition key ("Quantum  Computing" -> "quantum_computing")."""
    key = _WHITESPACE_RE.sub("_", topic.strip().lower())
    if not key:
        raise ValueError("topic must be non-empty")
    return key


class PaperStore:
    """One ``papers_info.json`` per topic directory under ``base_dir``.

    A partition is always replaced as a whole; searching a topic again
    discards whatever the previous search stored for it.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def partition_path(self, topic: str) -> Path:
        return self.base_dir / normalize_topic(topic) / PARTITION_FILENAME

    def write_partition(self, topic: str, records: Mapping[str, PaperRecord]) -> Path:
        """Replace the partition for ``topic`` with ``records``.

        The payload goes to a temporary file in the same directory and is then
        renamed over the partition file, so readers never see a partial write.
        OSError propagates to the caller.
        """
        path = self.partition_path(topic)
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {paper_id: record.to_dict() for paper_id, record in records.items()}
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".papers_info.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        LOGGER.info("Wrote %s papers for topic=%s to %s", len(payload), path.parent.name, path)
        return path

    def read_partition(self, topic: str) -> dict[str, PaperRecord] | None:
        """Return one partition, or None if it does not exist."""
        path = self.partition_path(topic)
        if not path.is_file():
            return None
        return _load_partition(path)

    def read_all_partitions(self) -> Iterator[tuple[str, dict[str, PaperRecord]]]:
        """Yield ``(topic_key, records)`` for every readable partition.

        Corrupt or unreadable partitions are logged and skipped.
        """
        if not self.base_dir.is_dir():
            return

        for entry in self.base_dir.iterdir():
            path = entry / PARTITION_FILENAME
            if not path.is_file():
                continue
            try:
                records = _load_partition(path)
            except PARTITION_READ_ERRORS as exc:
                LOGGER.warning("Skipping unreadable partition %s: %s", path, exc)
                continue
            yield entry.name, records

    def list_topics(self) -> list[str]:
        if not self.base_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.base_dir.iterdir()
            if (entry / PARTITION_FILENAME).is_file()
        )

    def find_by_id(self, paper_id: str) -> PaperRecord | None:
        """Linear scan over all partitions; first match wins."""
        for topic, records in self.read_all_partitions():
            record = records.get(paper_id)
            if record is not None:
                LOGGER.debug("Found paper_id=%s in topic=%s", paper_id, topic)
                return record
        return None


def _load_partition(path: Path) -> dict[str, PaperRecord]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    records: dict[str, PaperRecord] = {}
    for paper_id, item in data.items():
        if not isinstance(item, dict):
            raise ValueError(f"Expected an object for paper_id={paper_id} in {path}")
        records[paper_id] = PaperRecord.from_dict(paper_id, item)
    return records
