"""Turn cumulative part snapshots into incremental text deltas."""

from __future__ import annotations


class DeltaTracker:
    """Remembers the last full text forwarded for each part id.

    Upstream sends the whole text of a part on every update. The tracker
    returns only the suffix not yet forwarded. A snapshot shorter than what
    was already sent yields an empty delta; rewrites are not surfaced.
    """

    def __init__(self) -> None:
        self._sent: dict[str, str] = {}

    def compute(self, part_id: str, full_text: str) -> str:
        previous = self._sent.get(part_id, "")
        self._sent[part_id] = full_text
        return full_text[len(previous):]

    def seed(self, part_id: str, full_text: str) -> None:
        """Record text as already sent without producing a delta."""
        self._sent[part_id] = full_text

    def last_sent(self, part_id: str) -> str:
        return self._sent.get(part_id, "")

    def forget(self, part_id: str) -> None:
        self._sent.pop(part_id, None)

    def __contains__(self, part_id: object) -> bool:
        return part_id in self._sent

    def __len__(self) -> int:
        return len(self._sent)
