import asyncio
import unittest

from apps.agents.agent_schema import FullAgent, PartialAgent
from apps.agents.count_cache import CountCache
from apps.agents.errors import UpstreamError
from apps.agents.http_client import HttpResponse
from apps.agents.pipeline import AgentPageResolver
from apps.agents.tests.fakes import REGISTRY, FakeChainReader, FakeFetcher, agent_json


def _uri(agent_id: int) -> str:
    return f'https://agents.example.com/{agent_id}.json'


def _resolver(reader: FakeChainReader, fetcher: FakeFetcher, concurrency: int = 12) -> AgentPageResolver:
    return AgentPageResolver(
        reader=reader,
        fetcher=fetcher,
        count_cache=CountCache(reader),
        concurrency=concurrency
    )


class ResolvePageTests(unittest.IsolatedAsyncioTestCase):
    async def test_end_to_end_page_with_chain_and_fetch_failures(self) -> None:
        reader = FakeChainReader(total=7, values={'tokenURI': {i: _uri(i) for i in range(1, 8)}}, failing={5})
        fetcher = FakeFetcher(
            routes={_uri(4): agent_json('Four'), _uri(6): asyncio.TimeoutError()}
        )

        documents = await _resolver(reader, fetcher).resolve_page(REGISTRY, 1, 3)

        self.assertEqual(reader.read_batch_calls[0][2], [(4,), (5,), (6,)])
        self.assertEqual(fetcher.requested, [_uri(4), _uri(6)])
        self.assertEqual(len(documents), 2)
        self.assertIsInstance(documents[0], FullAgent)
        self.assertEqual(documents[0].name, 'Four')
        self.assertIsInstance(documents[1], PartialAgent)
        self.assertEqual(documents[1].error, 'Fetch error: timeout')

    async def test_count_failure_aborts_the_page(self) -> None:
        reader = FakeChainReader(total=7, broken=True)

        with self.assertRaises(UpstreamError):
            await _resolver(reader, FakeFetcher()).resolve_page(REGISTRY, 0, 3)

    async def test_batch_failure_aborts_the_page(self) -> None:
        class BrokenBatchReader(FakeChainReader):
            async def read_batch(self, registry, method, args_per_call, allow_partial_failure=True):
                raise UpstreamError('multicall:tokenURI', registry, 'aggregate reverted')

        reader = BrokenBatchReader(total=3)
        with self.assertRaises(UpstreamError):
            await _resolver(reader, FakeFetcher()).resolve_page(REGISTRY, 0, 3)

    async def test_exhausted_page_returns_empty_without_chain_batch(self) -> None:
        reader = FakeChainReader(total=2)

        self.assertEqual(await _resolver(reader, FakeFetcher()).resolve_page(REGISTRY, 5, 10), [])
        self.assertEqual(reader.read_batch_calls, [])

    async def test_non_http_uri_is_not_fetched(self) -> None:
        reader = FakeChainReader(total=2, values={'tokenURI': {1: 'ipfs://bafybeigdyr/1.json', 2: _uri(2)}})
        fetcher = FakeFetcher(routes={_uri(2): agent_json('Two')})

        documents = await _resolver(reader, fetcher).resolve_page(REGISTRY, 0, 10)

        self.assertEqual(fetcher.requested, [_uri(2)])
        self.assertEqual(documents[0].error, 'Invalid tokenURI: not an http(s) URL')
        self.assertEqual(documents[1].name, 'Two')

    async def test_http_status_and_json_errors_become_documents(self) -> None:
        reader = FakeChainReader(total=3, values={'tokenURI': {i: _uri(i) for i in range(1, 4)}})
        fetcher = FakeFetcher(
            routes={
                _uri(1): HttpResponse(status=503, reason='Service Unavailable', body=''),
                _uri(2): HttpResponse(status=200, reason='OK', body='{not json'),
                _uri(3): ConnectionResetError('connection reset by peer')
            }
        )

        documents = await _resolver(reader, fetcher).resolve_page(REGISTRY, 0, 3)

        self.assertEqual(documents[0].error, 'Failed to fetch tokenURI (503 Service Unavailable)')
        self.assertTrue(documents[1].error.startswith('Fetch error: '))
        self.assertEqual(documents[2].error, 'Fetch error: connection reset by peer')
        self.assertTrue(all(isinstance(document, PartialAgent) for document in documents))

    async def test_schema_failure_keeps_valid_fields(self) -> None:
        broken = agent_json('Broken')
        del broken['description']
        reader = FakeChainReader(total=1, values={'tokenURI': {1: _uri(1)}})
        fetcher = FakeFetcher(routes={_uri(1): broken})

        documents = await _resolver(reader, fetcher).resolve_page(REGISTRY, 0, 1)

        self.assertIsInstance(documents[0], PartialAgent)
        self.assertEqual(documents[0].name, 'Broken')
        self.assertTrue(documents[0].error)

    async def test_results_follow_id_order_not_completion_order(self) -> None:
        ids = range(1, 7)
        reader = FakeChainReader(total=6, values={'tokenURI': {i: _uri(i) for i in ids}})
        fetcher = FakeFetcher(
            routes={_uri(i): agent_json(f'Agent{i}') for i in ids},
            delays={_uri(i): (7 - i) * 0.005 for i in ids}
        )

        documents = await _resolver(reader, fetcher, concurrency=3).resolve_page(REGISTRY, 0, 6)

        self.assertEqual([document.name for document in documents], [f'Agent{i}' for i in ids])

    async def test_count_is_cached_across_pages(self) -> None:
        reader = FakeChainReader(total=4, values={'tokenURI': {i: _uri(i) for i in range(1, 5)}})
        fetcher = FakeFetcher(routes={_uri(i): agent_json(f'A{i}') for i in range(1, 5)})
        resolver = _resolver(reader, fetcher)

        await resolver.resolve_page(REGISTRY, 0, 2)
        await resolver.resolve_page(REGISTRY, 1, 2)

        self.assertEqual(len(reader.read_one_calls), 1)
        self.assertEqual(await resolver.get_total_count(REGISTRY), 4)


class SupplementaryOperationsTests(unittest.IsolatedAsyncioTestCase):
    async def test_resolve_page_owners(self) -> None:
        owner = '0x70997970C51812dc3A010C7d01b50e0d17dc79C8'
        reader = FakeChainReader(total=3, values={'ownerOf': {1: owner, 3: owner}})

        owners = await _resolver(reader, FakeFetcher()).resolve_page_owners(REGISTRY, 0, 3)

        self.assertEqual(owners, [(1, owner), (3, owner)])

    async def test_resolve_agent(self) -> None:
        reader = FakeChainReader(values={'tokenURI': {9: _uri(9)}})
        fetcher = FakeFetcher(routes={_uri(9): agent_json('Nine')})

        document = await _resolver(reader, fetcher).resolve_agent(REGISTRY, 9)

        self.assertIsInstance(document, FullAgent)
        self.assertEqual(document.name, 'Nine')

    async def test_resolve_agent_propagates_missing_token(self) -> None:
        reader = FakeChainReader()

        with self.assertRaises(UpstreamError):
            await _resolver(reader, FakeFetcher()).resolve_agent(REGISTRY, 1)

    def test_rejects_non_positive_concurrency(self) -> None:
        reader = FakeChainReader()
        with self.assertRaises(ValueError):
            AgentPageResolver(reader, FakeFetcher(), CountCache(reader), concurrency=0)
