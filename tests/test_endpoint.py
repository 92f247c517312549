"""
Tests for the in-memory endpoint runtime.
"""

import pytest

from zigmatter.matter import device_types as dt
from zigmatter.matter.clusters import ClusterId, LockState, SemanticTag, TagNamespace
from zigmatter.matter.endpoint import (
    Endpoint,
    UnknownClusterError,
    UnknownCommandError,
    UnknownEndpointError,
)


@pytest.fixture
def light():
    endpoint = Endpoint("Bulb", [dt.DIMMABLE_LIGHT])
    endpoint.add_cluster_server(ClusterId.ON_OFF)
    endpoint.add_cluster_server(ClusterId.LEVEL_CONTROL, {"currentLevel": 100})
    return endpoint


class TestAttributes:
    """Tests for attribute storage and notification."""

    def test_defaults(self, light):
        assert light.get_attribute(ClusterId.ON_OFF, "onOff") is False
        assert light.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel") == 100
        assert light.get_attribute(ClusterId.LEVEL_CONTROL, "minLevel") == 1

    def test_unknown_cluster(self, light):
        with pytest.raises(UnknownClusterError):
            light.get_attribute(ClusterId.COLOR_CONTROL, "currentHue")

    def test_subscribers_notified_on_change(self, light):
        changes = []
        unsubscribe = light.subscribe_attribute(ClusterId.ON_OFF, "onOff", lambda new, old: changes.append((new, old)))

        assert light.set_attribute(ClusterId.ON_OFF, "onOff", True) is True
        assert light.set_attribute(ClusterId.ON_OFF, "onOff", True) is False
        unsubscribe()
        light.set_attribute(ClusterId.ON_OFF, "onOff", False)

        assert changes == [(True, False)]

    def test_controller_write(self, light):
        """Write handlers run for controller writes, not for local updates."""
        writes = []
        light.on_attribute_write(ClusterId.LEVEL_CONTROL, "currentLevel", lambda new, old: writes.append(new))

        light.set_attribute(ClusterId.LEVEL_CONTROL, "currentLevel", 50)
        light.write_attribute(ClusterId.LEVEL_CONTROL, "currentLevel", 80)

        assert writes == [80]
        assert light.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel") == 80


class TestCommands:
    """Tests for command invocation."""

    @pytest.mark.asyncio
    async def test_handler_sees_previous_state(self, light):
        """Handlers run before the command's local effect."""
        seen = []

        async def handler(request, endpoint):
            seen.append(endpoint.get_attribute(ClusterId.ON_OFF, "onOff"))

        light.add_command_handler("on", handler)
        await light.invoke_command("on")

        assert seen == [False]
        assert light.get_attribute(ClusterId.ON_OFF, "onOff") is True

    @pytest.mark.asyncio
    async def test_level_with_on_off(self, light):
        await light.invoke_command("moveToLevelWithOnOff", {"level": 30})
        assert light.get_attribute(ClusterId.ON_OFF, "onOff") is True
        assert light.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel") == 30

        await light.invoke_command("moveToLevelWithOnOff", {"level": 0})
        assert light.get_attribute(ClusterId.ON_OFF, "onOff") is False
        assert light.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel") == 30

    @pytest.mark.asyncio
    async def test_unknown_command(self, light):
        with pytest.raises(UnknownCommandError):
            await light.invoke_command("selfDestruct")

    @pytest.mark.asyncio
    async def test_effect_skips_missing_cluster(self, light):
        await light.invoke_command("lockDoor")
        assert not light.has_cluster_server(ClusterId.DOOR_LOCK)

    @pytest.mark.asyncio
    async def test_clear_handlers(self, light):
        calls = []

        async def handler(request, endpoint):
            calls.append(request)

        light.add_command_handler("toggle", handler)
        light.clear_handlers()
        await light.invoke_command("toggle")

        assert calls == []
        assert not light.has_command_handler("toggle")


class TestStructure:
    """Tests for child endpoints, labels and tags."""

    def test_children(self, light):
        root = Endpoint("Lamp", [dt.BRIDGED_NODE])
        root.add_child_endpoint(light)

        assert root.get_child_endpoint("Bulb") is light
        assert light.parent is root
        assert list(root.walk()) == [root, light]
        with pytest.raises(UnknownEndpointError) as exc:
            root.get_child_endpoint("l9")
        assert "Endpoint Lamp has no child endpoint l9" in str(exc.value)

    def test_labels_and_tags(self):
        endpoint = Endpoint("l1")
        tag = SemanticTag(TagNamespace.COMMON_NUMBER, 1, "l1")
        endpoint.add_tag(tag)
        endpoint.add_tag(tag)
        endpoint.add_fixed_label("endpointName", "l1")

        assert endpoint.tags == [tag]
        assert endpoint.get_attribute(ClusterId.FIXED_LABEL, "labelList") == [{"label": "endpointName", "value": "l1"}]

    def test_events(self):
        endpoint = Endpoint("switch_1")
        endpoint.add_cluster_server(ClusterId.SWITCH)
        received = []
        endpoint.subscribe_events(received.append)
        endpoint.trigger_event(ClusterId.SWITCH, "initialPress", {"newPosition": 1})

        assert received[0].event == "initialPress"
        assert received[0].payload == {"newPosition": 1}
        assert endpoint.events == received

    def test_to_dict(self, light):
        light.add_cluster_server(ClusterId.DOOR_LOCK)
        data = light.to_dict()
        assert data["device_types"] == [{"name": "MA-dimmablelight", "code": 0x0101}]
        lock = next(c for c in data["clusters"] if c["name"] == "DOOR_LOCK")
        assert lock["attributes"]["lockState"] == LockState.LOCKED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
