"""Unit tests for the split coordinator."""

import pytest

from core.exceptions import ConfigurationError
from core.lifecycle import LifecycleController
from core.models import InputSplit, LifecycleState
from core.splits import SplitCoordinator


@pytest.fixture
def coordinator(binlog_config, client_factory, journal_validator, authority_checker):
    def build(split: InputSplit) -> LifecycleController:
        return LifecycleController(
            binlog_config,
            split_index=split.index,
            client_factory=client_factory,
            journal_validator=journal_validator,
            authority_checker=authority_checker,
            poll_interval_ms=10,
        )

    return SplitCoordinator(build)


class TestSplitCoordinator:
    def test_create_splits(self, coordinator):
        splits = coordinator.create_splits(4)

        assert [s.index for s in splits] == [0, 1, 2, 3]
        assert all(s.total == 4 for s in splits)

    @pytest.mark.parametrize("total", [0, -1])
    def test_invalid_split_count(self, coordinator, total):
        with pytest.raises(ConfigurationError):
            coordinator.create_splits(total)

    def test_only_first_split_streams(self, coordinator, client_factory):
        controllers = [coordinator.open_split(s) for s in coordinator.create_splits(4)]

        assert coordinator.started_splits == [0]
        assert len(client_factory.clients) == 1
        assert client_factory.clients[0].start_calls == 1
        assert controllers[0].state == LifecycleState.STREAMING

        for idle in controllers[1:]:
            assert idle.state == LifecycleState.IDLE
            assert idle.client is None
            assert idle.next(timeout=0.05) is None
            assert idle.reached_end() is False
            assert idle.checkpoint() is None

        for controller in controllers:
            controller.close()

        assert len(client_factory.clients) == 1

    def test_is_reader(self, coordinator):
        first, second = coordinator.create_splits(2)

        assert coordinator.is_reader(first)
        assert not coordinator.is_reader(second)
        assert not coordinator.is_reader(None)
