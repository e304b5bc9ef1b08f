"""Read path: search term in, JSON-ready news list out."""

from __future__ import annotations

from typing import Dict, List, Optional

from database import NewsDatabase


class NewsQueryService:
    def __init__(self, store: NewsDatabase):
        self.store = store

    def handle(self, term: Optional[str] = None) -> List[Dict[str, str]]:
        """Items whose title contains term (all items when term is empty), newest first.

        Store errors propagate unchanged; callers decide how to report them.
        """
        return [item.to_public_dict() for item in self.store.query(term or None)]

    def item_count(self) -> int:
        return self.store.count()
