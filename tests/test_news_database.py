import os
import sqlite3
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone

from database import NewsDatabase, StoreReadError
from newsharvest.ingestion.item_types import NewsItem


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestNewsDatabase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.db_path = os.path.join(self.tmp.name, "data", "news.db")
        self.db = NewsDatabase(self.db_path)

    def _seed(self, *titles):
        for i, title in enumerate(titles):
            self.db.insert(NewsItem(link=f"http://example.com/{i}", title=title, first_seen=T0 + timedelta(minutes=i)))

    def test_insert_is_idempotent_and_keeps_first_seen(self):
        item = NewsItem(link="http://example.com/a", title="Original", first_seen=T0)
        self.assertTrue(self.db.insert(item))
        later = NewsItem(link="http://example.com/a", title="Retitled", first_seen=T0 + timedelta(days=1))
        self.assertFalse(self.db.insert(later))

        rows = self.db.query()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].title, "Original")
        self.assertEqual(rows[0].first_seen, T0)

    def test_insert_without_first_seen_stamps_now(self):
        before = datetime.now(timezone.utc)
        self.db.insert(NewsItem(link="http://example.com/now", title="Now"))
        stored = self.db.query()[0].first_seen
        self.assertGreaterEqual(stored, before - timedelta(seconds=1))

    def test_query_orders_newest_first(self):
        self._seed("oldest", "middle", "newest")
        self.assertEqual([i.title for i in self.db.query(None)], ["newest", "middle", "oldest"])

    def test_query_ties_fall_back_to_insertion_order(self):
        for n in range(3):
            self.db.insert(NewsItem(link=f"http://example.com/t{n}", title=f"tie {n}", first_seen=T0))
        self.assertEqual([i.title for i in self.db.query()], ["tie 2", "tie 1", "tie 0"])

    def test_substring_filter(self):
        self._seed("Oil prices rise", "Election results", "Crude oil slump", "Oilers win")
        self.assertEqual([i.title for i in self.db.query("Oil")], ["Oilers win", "Oil prices rise"])
        self.assertEqual([i.title for i in self.db.query("oil")], ["Crude oil slump"])
        self.assertEqual(self.db.query("nothing matches"), [])

    def test_empty_term_lists_everything(self):
        self._seed("a", "b")
        self.assertEqual(self.db.query(""), self.db.query(None))
        self.assertEqual(len(self.db.query("")), 2)

    def test_term_is_not_a_like_pattern(self):
        self._seed("50% off", "500 reasons")
        self.assertEqual([i.title for i in self.db.query("%")], ["50% off"])

    def test_survives_reopen_and_schema_is_idempotent(self):
        self._seed("persisted")
        self.db.init_database()
        reopened = NewsDatabase(self.db_path)
        self.assertEqual([i.title for i in reopened.query()], ["persisted"])
        self.assertEqual(reopened.count(), 1)

    def test_concurrent_writers_keep_links_unique(self):
        def writer():
            for n in range(20):
                self.db.insert(NewsItem(link=f"http://example.com/c{n}", title=f"c{n}"))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(self.db.count(), 20)

    def test_read_failure_raises_store_read_error(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DROP TABLE news")
        with self.assertRaises(StoreReadError):
            self.db.query()


if __name__ == "__main__":
    unittest.main()
