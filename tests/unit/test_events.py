"""
Unit tests for the event emitter
"""
import pytest
from unittest.mock import MagicMock

from strata.events import EventEmitter


@pytest.mark.unit
class TestEventEmitter:
    """Test EventEmitter"""

    def test_emit_calls_listeners_in_order(self):
        """Test listeners run in registration order with the emitted args"""
        emitter = EventEmitter()
        calls = []
        emitter.on('error', lambda err, ctx: calls.append(('first', err, ctx)))
        emitter.on('error', lambda err, ctx: calls.append(('second', err, ctx)))

        assert emitter.emit('error', 'boom', 'ctx') is True
        assert calls == [('first', 'boom', 'ctx'), ('second', 'boom', 'ctx')]

    def test_emit_without_listeners(self):
        """Test emitting an event nobody listens to returns False"""
        assert EventEmitter().emit('error', ValueError()) is False

    def test_on_as_decorator(self):
        """Test on() used as a decorator registers the function"""
        emitter = EventEmitter()

        @emitter.on('error')
        def listener(err, ctx):
            pass

        assert emitter.listeners('error') == [listener]

    def test_once(self):
        """Test once listeners are removed after the first emit"""
        emitter = EventEmitter()
        listener = MagicMock()
        emitter.once('error', listener)

        emitter.emit('error', 1)
        emitter.emit('error', 2)

        listener.assert_called_once_with(1)
        assert emitter.listener_count('error') == 0

    def test_once_keeps_permanent_registration(self):
        """Test firing a once listener leaves an on() registration of the same function"""
        emitter = EventEmitter()
        listener = MagicMock()
        emitter.on('error', listener)
        emitter.once('error', listener)

        for value in range(3):
            emitter.emit('error', value)

        assert listener.call_count == 4
        assert emitter.listeners('error') == [listener]

    def test_off(self):
        """Test removing one listener or all of them"""
        emitter = EventEmitter()
        first, second = MagicMock(), MagicMock()
        emitter.on('error', first).on('error', second)

        emitter.off('error', first)
        assert emitter.listeners('error') == [second]

        emitter.off('error')
        assert emitter.listener_count('error') == 0

    def test_rejects_non_callable(self):
        """Test registering something that cannot be called fails"""
        with pytest.raises(TypeError):
            EventEmitter().on('error', 'not callable')

    def test_listener_exception_propagates(self):
        """Test an exception raised by a listener reaches the emitter"""
        emitter = EventEmitter()
        emitter.on('error', MagicMock(side_effect=RuntimeError("listener failed")))

        with pytest.raises(RuntimeError, match="listener failed"):
            emitter.emit('error', ValueError())

    @pytest.mark.asyncio
    async def test_async_listener_is_scheduled(self):
        """Test coroutine listeners run on the event loop"""
        emitter = EventEmitter()
        seen = []

        async def listener(err):
            seen.append(err)

        emitter.on('error', listener)
        emitter.emit('error', 'boom')
        await emitter.drain()

        assert seen == ['boom']

    @pytest.mark.asyncio
    async def test_async_listener_failure_is_logged(self, caplog):
        """Test a failing coroutine listener is logged, not raised"""
        emitter = EventEmitter()

        async def listener(err):
            raise RuntimeError("async failure")

        emitter.on('error', listener)
        emitter.emit('error', 'boom')
        await emitter.drain()

        assert "async failure" in caplog.text
