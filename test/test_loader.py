"""Test resolving generated code through the distribution loader"""
import importlib.util
import sys

import pytest

from multirepl.interpreter import Interpreter
from multirepl.loader import CodePath, DistributionLoader
from multirepl.serializer import Serializer


def _compile_session(store):
    """Evaluate a few lines in session 1, then drop them from memory"""
    interpreter = Interpreter(1, store)
    interpreter.compile_and_eval("scale = 3")
    r = interpreter.compile_and_eval(
        "class Point:\n"
        "    def __init__(self, x, y):\n"
        "        self.x, self.y = x, y\n"
        "    def scaled(self):\n"
        "        return Point(self.x * scale, self.y * scale)\n"
        "    class Kind:\n"
        "        name = 'point'"
    )
    assert r.ok
    interpreter.close()
    assert "session_1.line2" not in sys.modules
    return r.module_name


@pytest.fixture
def loader(store):
    loader = DistributionLoader(store.root)
    loader.install()
    yield loader
    loader.uninstall()


def test_round_trip(store, loader):
    module_name = _compile_session(store)
    Point = loader.find_class(module_name, "Point")
    assert Point.__module__ == "session_1.line2"
    assert Point(1, 2).scaled().x == 3
    assert loader.find_class(module_name, "Point.Kind").name == "point"
    # parent package was loaded too
    assert sys.modules["session_1"].line2 is sys.modules[module_name]


def test_missing_names(store, loader):
    module_name = _compile_session(store)
    with pytest.raises(AttributeError):
        loader.find_class(module_name, "Nope")
    with pytest.raises(ModuleNotFoundError):
        loader.find_class("session_1.line99", "Point")


def test_falls_back_to_import_system(store):
    loader = DistributionLoader(store.root)
    assert loader.find_class("collections", "OrderedDict").__name__ == "OrderedDict"
    assert loader.find_spec("collections") is None


def test_parent_delegation(tmp_path, store):
    other = tmp_path / "driver"
    other.mkdir()
    (other / "driver_only.py").write_text("VALUE = 'from the driver'\n")

    class DriverFinder:
        def find_spec(self, fullname, path=None, target=None):
            location = other / f"{fullname}.py"
            if location.exists():
                return importlib.util.spec_from_file_location(fullname, location)
            return None

    loader = DistributionLoader(store.root, parent=DriverFinder())
    try:
        assert loader.find_class("driver_only", "VALUE") == "from the driver"
    finally:
        sys.modules.pop("driver_only", None)


def test_store_wins_over_parent(store):
    (store.root / "shadowed.py").write_text("WHO = 'store'\n")

    class Parent:
        def find_spec(self, fullname, path=None, target=None):
            raise AssertionError("parent consulted")

    loader = DistributionLoader(store.root, parent=Parent())
    try:
        assert loader.find_class("shadowed", "WHO") == "store"
    finally:
        sys.modules.pop("shadowed", None)


def test_install_is_idempotent(store):
    loader = DistributionLoader(store.root)
    loader.install()
    loader.install()
    try:
        assert sys.meta_path.count(loader) == 1
        assert loader.installed
    finally:
        loader.uninstall()
    assert not loader.installed
    loader.uninstall()


def test_serializer_uses_default_loader(store, loader):
    interpreter = Interpreter(1, store)
    interpreter.compile_and_eval(
        "class Box:\n    def __init__(self, v):\n        self.v = v"
    )
    interpreter.compile_and_eval("box = Box(7)")
    payload = Serializer("data").dumps(interpreter.bindings["box"])
    interpreter.close()

    value = Serializer("data", default_loader=loader).loads(payload)
    assert value.v == 7
    assert type(value).__module__ == "session_1.line1"


def test_code_path(tmp_path, store):
    code_path = CodePath()
    code_path.add_path(store.root)
    code_path.add_path(store.root)
    assert code_path.paths == [store.root]
    assert code_path.find_spec("session_1") is None

    _compile_session(store)
    assert code_path.find_spec("session_1.line2").origin.endswith("line2.py")

    code_path.install()
    try:
        module = importlib.import_module("session_1.line2")
        assert module.Point(1, 1).scaled().y == 3
    finally:
        code_path.uninstall()
