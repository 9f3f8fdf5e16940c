"""
Integration tests for application lifecycle and error handling
"""
import asyncio
import logging

import httpx
import pytest


@pytest.mark.integration
class TestApplicationLifecycle:
    """Test application lifecycle integration"""

    @pytest.fixture
    def lifecycle_app(self, loud_app):
        """Create an application for lifecycle testing"""
        resources = {}

        @loud_app.on_startup
        async def connect(app):
            resources['db'] = 'connected'

        @loud_app.on_shutdown
        def disconnect(app):
            resources.pop('db', None)

        async def handler(ctx, next):
            if ctx.path == '/error':
                raise ValueError("Test error")
            ctx.body = {'db': resources.get('db')}

        loud_app.use(handler)
        loud_app.resources = resources
        return loud_app

    @pytest.mark.asyncio
    async def test_lifespan_around_requests(self, lifecycle_app):
        """Test startup runs before requests and shutdown after"""
        queue = asyncio.Queue()
        sent = []

        async def send(message):
            sent.append(message['type'])

        lifespan = asyncio.ensure_future(lifecycle_app({'type': 'lifespan'}, queue.get, send))
        await queue.put({'type': 'lifespan.startup'})
        while 'lifespan.startup.complete' not in sent:
            await asyncio.sleep(0)

        transport = httpx.ASGITransport(app=lifecycle_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get('/')
        assert response.json() == {'db': 'connected'}

        await queue.put({'type': 'lifespan.shutdown'})
        await lifespan

        assert sent == ['lifespan.startup.complete', 'lifespan.shutdown.complete']
        assert lifecycle_app.resources == {}

    @pytest.mark.asyncio
    async def test_error_handling_integration(self, lifecycle_app, caplog):
        """Test unexpected errors are hidden from clients and logged"""
        transport = httpx.ASGITransport(app=lifecycle_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get('/error')

        assert response.status_code == 500
        assert response.text == 'Internal Server Error'

        logged = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(logged) == 1
        assert 'ValueError: Test error' in logged[0].getMessage()

    @pytest.mark.asyncio
    async def test_custom_error_listener(self, lifecycle_app, caplog):
        """Test a custom listener replaces the default logging"""
        reported = []
        lifecycle_app.on('error', lambda err, ctx: reported.append((type(err), ctx.path)))

        transport = httpx.ASGITransport(app=lifecycle_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get('/error')

        assert response.status_code == 500
        assert reported == [(ValueError, '/error')]
        assert not [r for r in caplog.records if r.levelno == logging.ERROR]
