"""
Tests for the shared aiohttp client against a local test server.

Run with: pytest tests/test_http_client.py -v
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from goldwatch.connectors.http import HttpClient
from goldwatch.core.errors import AuthExpired, UpstreamUnavailable


def _app():
    async def ok(request):
        return web.json_response({'data': {'buying_rate': 100}})

    async def echo(request):
        return web.json_response({'received': await request.json()})

    async def unauthorized(request):
        return web.Response(status=401)

    async def broken(request):
        return web.Response(status=503)

    async def garbage(request):
        return web.Response(text='<html>not json</html>')

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text='late')

    app = web.Application()
    app.router.add_get('/ok', ok)
    app.router.add_post('/echo', echo)
    app.router.add_get('/401', unauthorized)
    app.router.add_get('/503', broken)
    app.router.add_get('/garbage', garbage)
    app.router.add_get('/slow', slow)
    return app


class TestHttpClient:

    @pytest.mark.asyncio
    async def test_responses_map_to_errors(self):
        server = test_utils.TestServer(_app())
        await server.start_server()
        http = HttpClient(default_timeout=2.0)
        try:
            assert await http.get_json(str(server.make_url('/ok')), source='t') == {'data': {'buying_rate': 100}}
            assert await http.post_json(str(server.make_url('/echo')), {'a': 1}, source='t') == {'received': {'a': 1}}

            with pytest.raises(AuthExpired):
                await http.get_json(str(server.make_url('/401')), source='t')

            with pytest.raises(UpstreamUnavailable) as exc_info:
                await http.get_json(str(server.make_url('/503')), source='t')
            assert exc_info.value.reason == 'HTTP 503'

            with pytest.raises(UpstreamUnavailable) as exc_info:
                await http.get_json(str(server.make_url('/garbage')), source='t')
            assert exc_info.value.reason == 'malformed JSON'

            with pytest.raises(UpstreamUnavailable) as exc_info:
                await http.get_text(str(server.make_url('/slow')), source='t', timeout=0.05)
            assert exc_info.value.reason == 'timeout'
        finally:
            await http.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        http = HttpClient(default_timeout=1.0)
        try:
            with pytest.raises(UpstreamUnavailable):
                await http.get_text('http://127.0.0.1:1/', source='t')
        finally:
            await http.close()
