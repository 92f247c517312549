"""
Tests for the outbound debouncer.
"""

import asyncio

import pytest

from zigmatter.bridge.debouncer import CommandCache, OutboundDebouncer, PublishState


DEBOUNCE = 0.02
SUPPRESS = 0.1


@pytest.fixture
def sent():
    return []


@pytest.fixture
def debouncer(sent):
    def publish(command, name, payload):
        sent.append((command, name, payload))
    return OutboundDebouncer("Bulb", publish, debounce_seconds=DEBOUNCE, suppress_seconds=SUPPRESS)


class TestCommandCache:
    """Tests for merging pending fields."""

    def test_merge_overwrites(self):
        cache = CommandCache()
        cache.merge({"state": "ON", "brightness": 10})
        cache.merge({"brightness": 200})
        assert cache.payload == {"state": "ON", "brightness": 200}

    def test_color_kinds_exclusive(self):
        """A color replaces a pending color temperature on the same endpoint and vice versa."""
        cache = CommandCache()
        cache.merge({"color_temp": 300})
        cache.merge({"color": {"x": 0.3, "y": 0.3}})
        assert cache.payload == {"color": {"x": 0.3, "y": 0.3}}

        cache.merge({"color_temp": 250})
        assert cache.payload == {"color_temp": 250}

    def test_color_kinds_per_endpoint(self):
        cache = CommandCache()
        cache.merge({"color_temp_l1": 300, "color_l2": {"x": 0.1, "y": 0.2}})
        cache.merge({"color_l1": {"x": 0.3, "y": 0.3}})
        assert set(cache.payload) == {"color_l1", "color_l2"}

    def test_color_mode_is_not_a_color(self):
        cache = CommandCache()
        cache.merge({"color": {"x": 0.3, "y": 0.3}, "color_mode": "xy"})
        assert set(cache.payload) == {"color", "color_mode"}

    def test_seed_keeps_pending(self):
        """Seeding only fills fields the commands did not set."""
        cache = CommandCache()
        cache.merge({"brightness": 50, "color_temp": 300})
        cache.seed({"state": "ON", "brightness": 254, "color": {"x": 0.1, "y": 0.1}})
        assert cache.payload == {"brightness": 50, "color_temp": 300, "state": "ON"}

    def test_clear(self):
        cache = CommandCache()
        cache.merge({"state": "ON"})
        cache.clear()
        assert not cache


class TestOutboundDebouncer:
    """Tests for the publish state machine."""

    @pytest.mark.asyncio
    async def test_burst_coalesced(self, debouncer, sent):
        """Commands within the debounce window become one publish."""
        debouncer.queue("set", {"state": "ON"})
        debouncer.queue("set", {"brightness": 100})
        assert debouncer.state == PublishState.DEBOUNCING
        assert sent == []

        await asyncio.sleep(DEBOUNCE * 3)

        assert sent == [("set", "Bulb", {"state": "ON", "brightness": 100})]
        assert debouncer.publish_count == 1

    @pytest.mark.asyncio
    async def test_suppression_window(self, debouncer):
        """After publishing, inbound state is suppressed until the window ends."""
        debouncer.queue("set", {"state": "ON"})
        await asyncio.sleep(DEBOUNCE * 3)
        assert debouncer.state == PublishState.SUPPRESSING
        assert debouncer.suppressed

        await asyncio.sleep(SUPPRESS + DEBOUNCE)
        assert debouncer.state == PublishState.IDLE
        assert not debouncer.suppressed

    @pytest.mark.asyncio
    async def test_longer_window(self, debouncer):
        """A command may ask for a longer suppression window."""
        debouncer.queue("set", {"current_heating_setpoint": 21}, suppress_seconds=SUPPRESS * 3)
        await asyncio.sleep(DEBOUNCE * 3 + SUPPRESS * 1.5)
        assert debouncer.suppressed

    @pytest.mark.asyncio
    async def test_queue_while_suppressing(self, debouncer, sent):
        debouncer.queue("set", {"state": "ON"})
        await asyncio.sleep(DEBOUNCE * 3)
        debouncer.queue("set", {"state": "OFF"})
        assert debouncer.state == PublishState.DEBOUNCING
        assert debouncer.suppressed

        await asyncio.sleep(DEBOUNCE * 3)
        assert [payload for _, _, payload in sent] == [{"state": "ON"}, {"state": "OFF"}]
        assert debouncer.state == PublishState.SUPPRESSING

    @pytest.mark.asyncio
    async def test_publish_failure(self):
        """A failed publish returns to idle without suppressing."""
        def publish(command, name, payload):
            raise ConnectionError("broker gone")

        debouncer = OutboundDebouncer("Bulb", publish, debounce_seconds=DEBOUNCE, suppress_seconds=SUPPRESS)
        debouncer.queue("set", {"state": "ON"})
        await asyncio.sleep(DEBOUNCE * 3)

        assert debouncer.state == PublishState.IDLE
        assert not debouncer.suppressed
        assert debouncer.publish_count == 0
        assert not debouncer.cache

    @pytest.mark.asyncio
    async def test_cancel(self, debouncer, sent):
        """Cancelling drops pending commands."""
        debouncer.queue("set", {"state": "ON"})
        debouncer.cancel()
        await asyncio.sleep(DEBOUNCE * 3)

        assert sent == []
        assert debouncer.state == PublishState.IDLE

    @pytest.mark.asyncio
    async def test_manual_suppress(self, debouncer):
        debouncer.suppress(SUPPRESS)
        assert debouncer.state == PublishState.SUPPRESSING
        debouncer.clear_suppression()
        assert debouncer.state == PublishState.IDLE
        assert not debouncer.suppressed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
