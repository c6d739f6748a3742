"""Shared fixtures: throwaway importable packages with a Shape hierarchy."""

from __future__ import annotations

import importlib
import os
import sys
import textwrap
import uuid
from pathlib import Path

import pytest

SHAPE_BASE = """
from abc import ABC, abstractmethod


class Shape(ABC):
    type_name: str

    @abstractmethod
    def area(self) -> float: ...
"""

CIRCLE = """
from .base import Shape


class Circle(Shape):
    type_name = "circle"

    def __init__(self, radius):
        self.radius = radius

    def area(self):
        return 3.14159 * self.radius ** 2
"""

SQUARE = """
from .base import Shape


class Square(Shape):
    type_name = "square"

    def __init__(self, side):
        self.side = side

    def area(self):
        return self.side ** 2
"""


class SourceTree:
    """A uniquely named package under an import root that is on sys.path."""

    def __init__(self, root: Path, package: str):
        self.root = root
        self.package = package
        self.pkg_dir = root / package
        self._tick = 0

    def write(self, relpath: str, source: str) -> Path:
        path = self.pkg_dir / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip("\n"))
        # Push mtime forward so pollers see every write, however fast
        self._tick += 1
        st = path.stat()
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + self._tick * 1_000_000_000))
        return path

    def module(self, name: str) -> str:
        return f"{self.package}.{name}"

    def import_module(self, name: str):
        importlib.invalidate_caches()
        return importlib.import_module(self.module(name))


@pytest.fixture
def tree(tmp_path, monkeypatch):
    package = f"fgpkg_{uuid.uuid4().hex[:10]}"
    root = tmp_path / "src"
    (root / package).mkdir(parents=True)
    (root / package / "__init__.py").write_text("")
    monkeypatch.syspath_prepend(str(root))
    yield SourceTree(root, package)
    for name in list(sys.modules):
        if name == package or name.startswith(package + "."):
            del sys.modules[name]
    importlib.invalidate_caches()


@pytest.fixture
def shapes(tree):
    """Package with base.py (abstract Shape), circle.py and square.py. Returns Shape."""
    tree.write("base.py", SHAPE_BASE)
    tree.write("circle.py", CIRCLE)
    tree.write("square.py", SQUARE)
    return tree.import_module("base").Shape
