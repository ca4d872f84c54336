import unittest

from aiohttp import test_utils, web

from apps.agents.http_client import AiohttpJsonFetcher, HttpResponse


class HttpResponseTests(unittest.TestCase):
    def test_ok_is_2xx(self) -> None:
        self.assertTrue(HttpResponse(200, 'OK', '').ok)
        self.assertTrue(HttpResponse(204, 'No Content', '').ok)
        self.assertFalse(HttpResponse(301, 'Moved Permanently', '').ok)
        self.assertFalse(HttpResponse(500, 'Internal Server Error', '').ok)


class AiohttpJsonFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        async def agent(request: web.Request) -> web.Response:
            return web.json_response({'accept': request.headers.get('Accept')})

        async def missing(request: web.Request) -> web.Response:
            return web.Response(status=404, text='nope')

        app = web.Application()
        app.router.add_get('/agent.json', agent)
        app.router.add_get('/missing.json', missing)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        self.fetcher = AiohttpJsonFetcher(timeout_seconds=5)

    async def asyncTearDown(self) -> None:
        await self.fetcher.close()
        await self.server.close()

    async def test_fetches_body_with_json_accept_header(self) -> None:
        response = await self.fetcher.get_json(str(self.server.make_url('/agent.json')))

        self.assertTrue(response.ok)
        self.assertEqual(response.status, 200)
        self.assertIn('"accept": "application/json"', response.body)

    async def test_reports_status_and_reason(self) -> None:
        response = await self.fetcher.get_json(str(self.server.make_url('/missing.json')))

        self.assertFalse(response.ok)
        self.assertEqual(response.status, 404)
        self.assertEqual(response.reason, 'Not Found')
