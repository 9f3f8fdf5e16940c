"""
Integration tests for middleware functionality
"""
import asyncio

import pytest

from strata import BaseMiddleware
from strata.exceptions import HTTPError, NextCalledMultipleTimesError
from strata.http.transport import ClientDisconnect
from strata.testing import ASGIRecorder, build_scope, make_receive


class ResponseTime(BaseMiddleware):
    """Adds an X-Response-Time header after downstream middleware ran"""

    async def __call__(self, ctx, next):
        loop = asyncio.get_running_loop()
        start = loop.time()
        await next()
        elapsed = (loop.time() - start) * 1000
        ctx.set(self.config.get('header', 'X-Response-Time'), f"{elapsed:.3f}ms")


@pytest.mark.integration
class TestMiddlewareIntegration:
    """Test requests flowing through the pipeline"""

    @pytest.mark.asyncio
    async def test_empty_pipeline_is_404(self, client):
        """Test an application without middleware answers 404 Not Found"""
        response = await client.get('/anything')

        assert response.status == 404
        assert response.text == 'Not Found'
        assert response.headers['content-type'] == 'text/plain; charset=utf-8'

    @pytest.mark.asyncio
    async def test_onion_order_over_the_wire(self, app, client):
        """Test upstream middleware sees what downstream middleware staged"""
        calls = []

        async def outer(ctx, next):
            calls.append('enter outer')
            await next()
            calls.append('exit outer')
            ctx.set('X-Body-Type', ctx.type)

        async def inner(ctx, next):
            calls.append('enter inner')
            ctx.body = {'ok': True}
            await next()
            calls.append('exit inner')

        app.use(outer).use(inner)
        response = await client.get('/')

        assert calls == ['enter outer', 'enter inner', 'exit inner', 'exit outer']
        assert response.headers['x-body-type'] == 'application/json'
        assert response.json() == {'ok': True}

    @pytest.mark.asyncio
    async def test_short_circuit(self, app, client):
        """Test middleware after one that skips next() never runs"""
        reached = []

        async def guard(ctx, next):
            ctx.status = 401
            ctx.body = 'login required'

        async def handler(ctx, next):
            reached.append(True)

        app.use(guard).use(handler)
        response = await client.get('/')

        assert reached == []
        assert response.status == 401
        assert response.text == 'login required'

    @pytest.mark.asyncio
    async def test_class_middleware_with_options(self, app, client):
        """Test class-based middleware registered with options"""
        async def hello(ctx, next):
            ctx.body = 'hello'

        app.use(ResponseTime, header='X-Elapsed').use(hello)
        response = await client.get('/')

        assert response.text == 'hello'
        assert response.headers['x-elapsed'].endswith('ms')

    @pytest.mark.asyncio
    async def test_state_shared_downstream(self, app, client):
        """Test ctx.state carries values between middleware of one request"""
        async def authenticate(ctx, next):
            ctx.state['user'] = ctx.get('X-User') or 'anonymous'
            await next()

        async def greet(ctx, next):
            ctx.body = f"hi {ctx.state['user']}"

        app.use(authenticate).use(greet)

        first = await client.get('/', headers={'X-User': 'ada'})
        second = await client.get('/')

        assert first.text == 'hi ada'
        assert second.text == 'hi anonymous'

    @pytest.mark.asyncio
    async def test_request_body(self, app, client):
        """Test middleware can read the request body"""
        async def echo(ctx, next):
            ctx.body = (await ctx.req.body()).upper()

        app.use(echo)
        response = await client.post('/', body=b'shout')

        assert response.body == b'SHOUT'
        assert response.headers['content-type'] == 'application/octet-stream'


@pytest.mark.integration
class TestErrorScenarios:
    """Test failures travelling to the error path"""

    @pytest.mark.asyncio
    async def test_double_next(self, app, client, errors):
        """Test calling next() twice ends in the error path"""
        async def twice(ctx, next):
            await next()
            await next()

        app.use(twice)
        response = await client.get('/')

        assert response.status == 500
        assert response.text == 'Internal Server Error'
        assert isinstance(errors[0][0], NextCalledMultipleTimesError)

    @pytest.mark.asyncio
    async def test_exposed_error(self, app, client, errors):
        """Test an exposed 400 reaches the client with its message"""
        async def validate(ctx, next):
            raise HTTPError(400, 'bad input', expose=True)

        app.use(validate)
        response = await client.get('/')

        assert response.status == 400
        assert response.text == 'bad input'
        assert response.headers['content-length'] == '9'
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_throw_with_headers(self, app, client, errors):
        """Test ctx.throw headers are sent and staged headers dropped"""
        async def limited(ctx, next):
            ctx.set('X-Staged', 'dropped')
            ctx.throw(429, 'slow down', headers={'Retry-After': '10'})

        app.use(limited)
        response = await client.get('/')

        assert response.status == 429
        assert response.text == 'slow down'
        assert response.headers['retry-after'] == '10'
        assert 'x-staged' not in response.headers

    @pytest.mark.asyncio
    async def test_upstream_error_handler(self, app, client, errors):
        """Test an upstream middleware can catch and replace errors"""
        async def handle_errors(ctx, next):
            try:
                await next()
            except HTTPError as err:
                ctx.status = err.status
                ctx.body = {'error': err.message}

        async def fail(ctx, next):
            ctx.throw(422, 'name is required')

        app.use(handle_errors).use(fail)
        response = await client.get('/')

        assert response.status == 422
        assert response.json() == {'error': 'name is required'}
        assert errors == []

    @pytest.mark.asyncio
    async def test_broken_error_listener(self, app, error_sink):
        """Test a raising error listener still ends in a 500 response"""
        recorder = ASGIRecorder()

        def broken(err, ctx):
            raise RuntimeError('listener broke')

        async def fail(ctx, next):
            ctx.set('X-Staged', 'dropped')
            raise ValueError('handler failed')

        error_sink.on('error', broken)
        app.use(fail)
        await app(build_scope(), make_receive(), recorder)

        assert recorder.status == 500
        assert recorder.text == 'Internal Server Error'
        assert 'x-staged' not in recorder.headers
        assert recorder.complete

    @pytest.mark.asyncio
    async def test_headers_sent_race(self, app, errors):
        """Test a failure after headers were flushed writes nothing more"""
        recorder = ASGIRecorder()
        failure = RuntimeError('late failure')

        async def stream_then_fail(ctx, next):
            ctx.status = 200
            await ctx.flush_headers()
            raise failure

        app.use(stream_then_fail)
        await app(build_scope(), make_receive(), recorder)

        assert [m['type'] for m in recorder.messages] == ['http.response.start']
        assert errors[0][0] is failure
        assert failure.header_sent is True

    @pytest.mark.asyncio
    async def test_abort_mid_pipeline(self, app, errors):
        """Test a connection abort reports once and skips the response"""
        recorder = ASGIRecorder()

        async def slow(ctx, next):
            await ctx.res.abort()
            ctx.body = 'too late'

        app.use(slow)
        await app(build_scope(), make_receive(), recorder)

        assert recorder.messages == []
        assert len(errors) == 1
        assert isinstance(errors[0][0], ConnectionAbortedError)

    @pytest.mark.asyncio
    async def test_disconnect_while_reading_body(self, app, errors):
        """Test a client leaving during upload reports once and writes nothing"""
        recorder = ASGIRecorder()

        async def upload(ctx, next):
            ctx.body = await ctx.req.body()

        app.use(upload)
        await app(build_scope('POST'), make_receive(chunks=[b'a', b'b'], disconnect=True), recorder)

        assert recorder.messages == []
        assert len(errors) == 1
        assert isinstance(errors[0][0], ClientDisconnect)

    @pytest.mark.asyncio
    async def test_send_failure(self, app, errors):
        """Test a failing send is reported through the error sink"""
        async def hello(ctx, next):
            ctx.body = 'hello'

        app.use(hello)
        await app(build_scope(), make_receive(), ASGIRecorder(fail_after=0))

        assert len(errors) == 1
        assert isinstance(errors[0][0], ConnectionResetError)
