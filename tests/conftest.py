"""Cluster tests need a local ArangoDB build or a docker image to run."""

import os

import pytest

STRATEGY_VARIABLES = ("RESILIENCE_ARANGO_BASEPATH", "RESILIENCE_DOCKER_IMAGE")


def pytest_collection_modifyitems(config: pytest.Config, items) -> None:
    if any(os.environ.get(name) for name in STRATEGY_VARIABLES):
        return
    skip = pytest.mark.skip(
        reason="set RESILIENCE_ARANGO_BASEPATH or RESILIENCE_DOCKER_IMAGE to run cluster tests"
    )
    for item in items:
        if "resilience_cluster" in item.keywords:
            item.add_marker(skip)
