import logging
from unittest.mock import MagicMock

import pytest

from bridge.core.run_context import FlowInfo, RunContext, TurnScope


class Resource:
    def __init__(self, name, released, fail=False):
        self.name = name
        self.released = released
        self.fail = fail

    def close(self):
        self.released.append(self.name)
        if self.fail:
            raise RuntimeError(f"{self.name} failed to close")


class TestTurnScope:
    """Tests for the release of turn resources."""

    def test_resources_are_released_in_reverse_order(self):
        released = []
        with TurnScope() as scope:
            scope.register(Resource("store", released))
            scope.register(Resource("client", released))
            scope.callback(lambda: released.append("registry"), "registry")
        assert released == ["registry", "client", "store"]

    def test_resources_are_released_when_the_turn_fails(self):
        released = []
        with pytest.raises(ValueError):
            with TurnScope() as scope:
                scope.register(Resource("store", released))
                raise ValueError("turn failed")
        assert released == ["store"]

    def test_failing_release_does_not_stop_other_releases(self, caplog):
        released = []
        with caplog.at_level(logging.ERROR, logger="bridge.core.run_context"):
            with TurnScope() as scope:
                scope.register(Resource("store", released))
                scope.register(Resource("client", released, fail=True), name="http client")
        assert released == ["client", "store"]
        assert "http client" in caplog.text

    def test_register_returns_the_resource(self):
        resource = MagicMock()
        scope = TurnScope()
        assert scope.register(resource) is resource
        scope.close()
        resource.close.assert_called_once()


class TestRunContext:

    def test_resolve_path_inside_working_dir(self, tmp_path):
        context = RunContext(FlowInfo(namespace="ns", flow_id="f"), working_dir=tmp_path)
        assert context.resolve_path("data/docs") == tmp_path.resolve() / "data" / "docs"

    def test_resolve_path_refuses_to_escape(self, tmp_path):
        context = RunContext(FlowInfo(namespace="ns", flow_id="f"), working_dir=tmp_path)
        with pytest.raises(ValueError):
            context.resolve_path("../outside")

    def test_labels_are_copied(self):
        labels = []
        context = RunContext(FlowInfo(namespace="ns", flow_id="f"), labels=labels)
        labels.append("late")
        assert context.labels == []
