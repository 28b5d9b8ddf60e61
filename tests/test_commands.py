"""
Tests for chat command routing.

Run with: pytest tests/test_commands.py -v
"""

import pytest

from conftest import FakeClock, FakeTransport, make_message
from goldwatch.alerts.commands import (
    REPLY_ACTIVATED,
    REPLY_ALREADY_ACTIVE,
    REPLY_DEACTIVATED,
    REPLY_NOT_ACTIVE,
    CommandRouter,
    ThrottleConfig,
    normalize_text,
)
from goldwatch.alerts.recipients import RecipientRegistry
from goldwatch.core.formatting import FETCH_FAILED_TEXT


def _router(report=None, ready=True, clock=None, **config):
    async def default_report():
        return "PRICE REPORT"

    transport = FakeTransport()
    registry = RecipientRegistry()
    config.setdefault('typing_s', 0)
    router = CommandRouter(
        registry, transport, report or default_report, ThrottleConfig(**config),
        is_ready=lambda: ready, clock=clock or FakeClock(),
    )
    return router, registry, transport


def test_normalize_text():
    assert normalize_text("  Harga   EMAS\nhari ini ") == "harga emas hari ini"
    assert normalize_text(None) == ""


# ═══════════════════════════════════════════════════════════════════════════
# Subscriptions
# ═══════════════════════════════════════════════════════════════════════════

class TestSubscriptionCommands:

    @pytest.mark.asyncio
    async def test_aktif_subscribes(self):
        router, registry, transport = _router()
        assert await router.handle(make_message('1', '111', 'Aktif')) == 'subscribed'
        assert '111' in registry
        assert transport.sent == [('111', REPLY_ACTIVATED)]

    @pytest.mark.asyncio
    async def test_aktif_twice_reports_already_active(self):
        router, registry, transport = _router()
        await router.handle(make_message('1', '111', 'aktif'))
        assert await router.handle(make_message('2', '111', 'aktif')) == 'already_subscribed'
        assert transport.sent[-1] == ('111', REPLY_ALREADY_ACTIVE)

    @pytest.mark.asyncio
    async def test_nonaktif_is_not_read_as_aktif(self):
        router, registry, transport = _router()
        registry.subscribe('111')
        assert await router.handle(make_message('1', '111', 'NONAKTIF')) == 'unsubscribed'
        assert '111' not in registry
        assert transport.sent == [('111', REPLY_DEACTIVATED)]

    @pytest.mark.asyncio
    async def test_nonaktif_when_not_subscribed(self):
        router, _, transport = _router()
        assert await router.handle(make_message('1', '111', 'nonaktif')) == 'not_subscribed'
        assert transport.sent == [('111', REPLY_NOT_ACTIVE)]

    @pytest.mark.asyncio
    async def test_word_must_stand_alone(self):
        router, registry, transport = _router()
        assert await router.handle(make_message('1', '111', 'diaktifkan')) is None
        assert len(registry) == 0
        assert transport.sent == []


# ═══════════════════════════════════════════════════════════════════════════
# Filtering
# ═══════════════════════════════════════════════════════════════════════════

class TestFiltering:

    @pytest.mark.asyncio
    async def test_ignored_until_ready(self):
        router, registry, _ = _router(ready=False)
        assert await router.handle(make_message('1', '111', 'aktif')) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_own_and_status_messages_ignored(self):
        router, registry, _ = _router()
        assert await router.handle(make_message('1', '111', 'aktif', from_self=True)) is None
        assert await router.handle(make_message('2', '111', 'aktif', is_status_broadcast=True)) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_duplicate_message_id_processed_once(self):
        router, _, transport = _router()
        await router.handle(make_message('1', '111', 'aktif'))
        assert await router.handle(make_message('1', '111', 'aktif')) is None
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_empty_text_ignored(self):
        router, _, transport = _router()
        assert await router.handle(make_message('1', '111', '   ')) is None
        assert await router.handle(make_message('2', '111', None)) is None
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_prune_keeps_newest_ids(self):
        router, _, _ = _router(processed_ids_max=5, processed_ids_keep=3)
        for i in range(7):
            await router.handle(make_message(str(i), '111', 'halo'))

        assert await router.prune_processed() == 4
        assert router.get_status()['processed_ids'] == 3
        # newest ids still deduplicated, oldest forgotten
        assert await router.handle(make_message('6', '111', 'aktif')) is None
        assert await router.handle(make_message('0', '111', 'aktif')) == 'subscribed'

    @pytest.mark.asyncio
    async def test_prune_below_limit_is_noop(self):
        router, _, _ = _router()
        await router.handle(make_message('1', '111', 'halo'))
        assert await router.prune_processed() == 0


# ═══════════════════════════════════════════════════════════════════════════
# Price report
# ═══════════════════════════════════════════════════════════════════════════

class TestPriceReport:

    @pytest.mark.asyncio
    async def test_trigger_word_sends_report(self):
        router, _, transport = _router()
        assert await router.handle(make_message('1', '111', 'harga emas dong')) == 'report'
        assert transport.typing == ['111']
        assert transport.sent == [('111', 'PRICE REPORT')]

    @pytest.mark.asyncio
    async def test_per_chat_cooldown(self):
        clock = FakeClock()
        router, _, transport = _router(clock=clock)
        await router.handle(make_message('1', '111', 'emas'))
        clock.advance(30)
        assert await router.handle(make_message('2', '111', 'emas')) == 'throttled'
        clock.advance(31)
        assert await router.handle(make_message('3', '111', 'emas')) == 'report'
        assert len(transport.sent) == 2

    @pytest.mark.asyncio
    async def test_global_spacing_across_chats(self):
        clock = FakeClock()
        router, _, transport = _router(clock=clock)
        await router.handle(make_message('1', '111', 'emas'))
        clock.advance(1)
        assert await router.handle(make_message('2', '222', 'emas')) == 'throttled'
        clock.advance(3)
        assert await router.handle(make_message('3', '222', 'emas')) == 'report'

    @pytest.mark.asyncio
    async def test_report_failure_replies_with_fallback(self):
        async def broken():
            raise RuntimeError("treasury down")

        router, _, transport = _router(report=broken)
        assert await router.handle(make_message('1', '111', 'emas')) == 'report'
        assert transport.sent == [('111', FETCH_FAILED_TEXT)]

    @pytest.mark.asyncio
    async def test_reply_failure_is_contained(self):
        router, _, transport = _router()
        transport.fail.add('111')
        assert await router.handle(make_message('1', '111', 'emas')) == 'report'
        assert transport.sent == []
