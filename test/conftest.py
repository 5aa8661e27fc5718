"""Shared fixtures"""

import sys

import pytest

from multirepl.bootstrap import InitializationController
from multirepl.cluster import local_context
from multirepl.registry import SessionRegistry
from multirepl.store import CompiledOutputStore


@pytest.fixture(autouse=True)
def clean_session_modules():
    """Session modules are process-global; don't let them leak between tests"""
    yield
    for name in [n for n in sys.modules if n.startswith("session_")]:
        del sys.modules[name]


@pytest.fixture
def store(tmp_path):
    return CompiledOutputStore(tmp_path / "classes")


@pytest.fixture
def cluster():
    ctx = local_context(2)
    yield ctx
    ctx.close()


@pytest.fixture
def controller():
    ctrl = InitializationController()
    yield ctrl
    ctrl.reset()


@pytest.fixture
def registry(cluster, store, controller):
    reg = SessionRegistry(cluster, store, controller)
    yield reg
    reg.close_all()


@pytest.fixture(autouse=True)
def no_loaded_config(monkeypatch):
    """Options from a previously loaded config file shouldn't apply"""
    from multirepl import config

    monkeypatch.setattr(config, "LAST_LOADED", None)
