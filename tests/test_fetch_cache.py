import asyncio
import unittest
from datetime import timedelta

from aiohttp import web
from aiohttp import test_utils

from adstxt_updater.errors import FetchFailed
from adstxt_updater.sync.cache import FetchCache, FetchResult

TTL = timedelta(seconds=60)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FetchCacheTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests = 0
        self.status = 200
        self.body = "content1"
        self.delay = 0.0

        async def handler(request: web.Request) -> web.Response:
            self.requests += 1
            if self.delay:
                await asyncio.sleep(self.delay)
            return web.Response(status=self.status, text=self.body)

        app = web.Application()
        app.router.add_get("/ads.txt", handler)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        self.url = str(self.server.make_url("/ads.txt"))

        self.clock = _Clock()
        self.cache = FetchCache(timeout_seconds=5, clock=self.clock)

    async def asyncTearDown(self) -> None:
        await self.cache.close()
        await self.server.close()

    async def test_caches_content_within_ttl(self) -> None:
        result1 = await self.cache.fetch(self.url, TTL)
        self.assertEqual(result1, FetchResult(content="content1", fresh=True))
        self.assertEqual(self.requests, 1)

        self.body = "content2"
        self.clock.advance(30)
        result2 = await self.cache.fetch(self.url, TTL)
        self.assertEqual(result2, FetchResult(content="content1", fresh=True))
        self.assertEqual(self.requests, 1)

        self.clock.advance(31)
        result3 = await self.cache.fetch(self.url, TTL)
        self.assertEqual(result3, FetchResult(content="content2", fresh=True))
        self.assertEqual(self.requests, 2)

    async def test_freshness_is_decided_by_the_callers_ttl(self) -> None:
        await self.cache.fetch(self.url, TTL)
        self.clock.advance(10)

        await self.cache.fetch(self.url, timedelta(seconds=60))
        self.assertEqual(self.requests, 1)
        await self.cache.fetch(self.url, timedelta(seconds=5))
        self.assertEqual(self.requests, 2)

    async def test_serves_stale_content_when_refetch_returns_error_status(self) -> None:
        await self.cache.fetch(self.url, TTL)
        self.status = 500
        self.body = "server error"
        self.clock.advance(120)

        with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
            result = await self.cache.fetch(self.url, TTL)
        self.assertEqual(result, FetchResult(content="content1", fresh=False))
        self.assertEqual(self.requests, 2)

        # A failed refetch does not refresh the entry, so the next call tries again.
        with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
            await self.cache.fetch(self.url, TTL)
        self.assertEqual(self.requests, 3)

        self.status = 200
        self.body = "content3"
        result = await self.cache.fetch(self.url, TTL)
        self.assertEqual(result, FetchResult(content="content3", fresh=True))

    async def test_serves_stale_content_when_server_is_unreachable(self) -> None:
        await self.cache.fetch(self.url, TTL)
        await self.server.close()
        self.clock.advance(120)

        with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
            result = await self.cache.fetch(self.url, TTL)
        self.assertEqual(result, FetchResult(content="content1", fresh=False))

    async def test_fails_when_first_request_fails(self) -> None:
        self.status = 404
        with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
            with self.assertRaises(FetchFailed) as ctx:
                await self.cache.fetch(self.url, TTL)
        self.assertEqual(ctx.exception.key, self.url)
        self.assertIsNone(self.cache.get_entry(self.url))

    async def test_fails_when_server_is_unreachable_without_cache(self) -> None:
        await self.server.close()
        with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
            with self.assertRaises(FetchFailed):
                await self.cache.fetch(self.url, TTL)

    async def test_unfollowed_redirect_status_is_a_failure(self) -> None:
        self.status = 300
        self.body = "multiple choices page"
        with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
            with self.assertRaises(FetchFailed):
                await self.cache.fetch(self.url, TTL)
        self.assertIsNone(self.cache.get_entry(self.url))

    async def test_unfollowed_redirect_status_serves_stale_content(self) -> None:
        await self.cache.fetch(self.url, TTL)
        for status in (300, 305):
            with self.subTest(status=status):
                self.status = status
                self.body = "redirect page"
                self.clock.advance(120)
                with self.assertLogs("adstxt_updater.sync.cache", level="WARNING"):
                    result = await self.cache.fetch(self.url, TTL)
                self.assertEqual(result, FetchResult(content="content1", fresh=False))
                entry = self.cache.get_entry(self.url)
                assert entry is not None
                self.assertEqual(entry.content, "content1")

    async def test_concurrent_fetches_of_one_url_share_a_request(self) -> None:
        self.delay = 0.05
        results = await asyncio.gather(*(self.cache.fetch(self.url, TTL) for _ in range(5)))
        self.assertEqual(self.requests, 1)
        self.assertTrue(all(r == FetchResult(content="content1", fresh=True) for r in results))

    async def test_entry_records_fetch_time(self) -> None:
        await self.cache.fetch(self.url, TTL)
        entry = self.cache.get_entry(self.url)
        assert entry is not None
        self.assertEqual(entry.key, self.url)
        self.assertEqual(entry.content, "content1")
        self.assertEqual(entry.fetched_at, 1000.0)


if __name__ == "__main__":
    unittest.main()
