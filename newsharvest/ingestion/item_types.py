"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class NewsItem:
    """One harvested article, identified by its absolute link.

    first_seen stays None until the store accepts the item for the first time.
    """

    link: str
    title: str
    first_seen: Optional[datetime] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return {"link": self.link, "title": self.title}
