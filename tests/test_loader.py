# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for ModuleLoader.

Test Coverage:
- Type collection (nested and conditionally defined classes)
- Module naming relative to the root
- Interface detection
- Import collection (absolute, aliased, relative)
- Rejection of native, binary and oversized files
- Error aggregation for modules failing in several ways
- Run-scoped caching
"""

import ast

import pytest

from packviz.reflection.loader import (
    ModuleLoader,
    ModuleLoadError,
    TypeEntity,
    collect_imports,
    is_interface_class,
    is_python_module,
    module_name_for,
)


class TestModuleLoading:
    """Tests for loading types from source files."""

    def test_collects_module_and_nested_classes(self, tmp_path, write_module):
        path = write_module(
            "shop/models.py",
            """
            import sys

            class Order:
                class Line:
                    pass

            if sys.version_info >= (3, 10):
                class Modern:
                    pass
            else:
                class Legacy:
                    pass

            try:
                class Guarded:
                    pass
            except ImportError:
                pass

            def factory():
                class Hidden:
                    pass
                return Hidden
            """,
        )

        module = ModuleLoader(tmp_path).load(path)

        assert module is not None
        assert module.name == "shop.models"
        assert not module.is_package
        assert [t.full_name for t in module.types] == [
            "shop.models.Order",
            "shop.models.Order.Line",
            "shop.models.Modern",
            "shop.models.Legacy",
            "shop.models.Guarded",
        ]

        line = module.get_type("Order.Line")
        assert line.name == "Line"
        assert line.qualname == "Order.Line"
        assert line.module is module
        assert not line.is_platform
        assert module.get_type("Hidden") is None

    def test_descriptor(self, tmp_path, write_module):
        path = write_module("shop/models.py", "class Order:\n    pass\n")
        type_ = ModuleLoader(tmp_path).load(path).types[0]

        descriptor = type_.descriptor()

        assert descriptor.id == "shop.models.Order"
        assert descriptor.name == "Order"
        assert descriptor.full_name == "shop.models.Order"

    def test_type_identity_is_full_name(self):
        plain = TypeEntity(full_name="shop.Order", name="Order", module_name="shop")
        flagged = TypeEntity(
            full_name="shop.Order",
            name="Order",
            module_name="shop",
            is_interface=True,
            is_platform=True,
        )

        assert plain == flagged
        assert hash(plain) == hash(flagged)
        assert plain != TypeEntity(full_name="shop.Item", name="Order", module_name="shop")

    def test_repeated_loads_return_cached_module(self, tmp_path, write_module):
        path = write_module("shop.py", "class Order:\n    pass\n")
        loader = ModuleLoader(tmp_path)

        first = loader.load(path)
        second = loader.load(tmp_path / "." / "shop.py")

        assert first is second
        assert loader.load_strict(path) is first
        assert len(loader.modules) == 1

    def test_latin1_fallback(self, tmp_path):
        path = tmp_path / "legacy.py"
        path.write_bytes(b"# caf\xe9\nclass Menu:\n    pass\n")

        module = ModuleLoader(tmp_path).load(path)

        assert module is not None
        assert [t.name for t in module.types] == ["Menu"]

    def test_declared_encoding(self, tmp_path):
        path = tmp_path / "declared.py"
        path.write_bytes(b"# -*- coding: cp1252 -*-\n# \x80\nclass Price:\n    pass\n")

        module = ModuleLoader(tmp_path).load(path)

        assert [t.name for t in module.types] == ["Price"]


class TestSkipping:
    """Tests for files the loader refuses to load."""

    def test_syntax_error_is_skipped(self, tmp_path, write_module):
        path = write_module("broken.py", "class Broken(:\n    pass\n")
        loader = ModuleLoader(tmp_path)

        assert loader.load(path) is None

        assert len(loader.skipped_modules) == 1
        skipped = loader.skipped_modules[0]
        assert skipped.path == str(path.resolve())
        assert skipped.reason.startswith("SyntaxError: ")

    def test_native_extension_is_skipped(self, tmp_path):
        path = tmp_path / "_speedups.cpython-312-x86_64-linux-gnu.so"
        path.write_bytes(b"\x7fELF\x00\x00")
        loader = ModuleLoader(tmp_path)

        assert loader.load(path) is None
        assert loader.skipped_modules[0].reason == "native extension module"

    def test_binary_content_is_skipped(self, tmp_path):
        path = tmp_path / "fake.py"
        path.write_bytes(b"class A:\x00\x01\x02")
        loader = ModuleLoader(tmp_path)

        assert loader.load(path) is None
        assert loader.skipped_modules[0].reason == "not a Python source module"

    def test_missing_file_is_skipped(self, tmp_path):
        loader = ModuleLoader(tmp_path)
        assert loader.load(tmp_path / "missing.py") is None
        assert loader.skipped_modules[0].reason == "not a file"

    def test_size_limits(self, tmp_path, write_module):
        path = write_module("big.py", "x = 1\n" * 20)

        assert ModuleLoader(tmp_path, max_file_lines=10).load(path) is None
        assert ModuleLoader(tmp_path, max_file_size_bytes=16).load(path) is None
        assert ModuleLoader(tmp_path).load(path) is not None

    def test_skip_recorded_once(self, tmp_path, write_module):
        path = write_module("broken.py", "def f(:\n")
        loader = ModuleLoader(tmp_path)

        loader.load(path)
        loader.load(path)

        assert len(loader.skipped_modules) == 1

    def test_load_strict_raises(self, tmp_path, write_module):
        path = write_module("broken.py", "def f(:\n")

        with pytest.raises(ModuleLoadError) as exc_info:
            ModuleLoader(tmp_path).load_strict(path)

        assert len(exc_info.value.causes) == 1
        assert isinstance(exc_info.value.causes[0], SyntaxError)

    def test_every_cause_is_kept(self, tmp_path):
        """Test that a decode failure followed by a parse failure keeps both causes."""
        path = tmp_path / "mangled.py"
        path.write_bytes(b"x = 1\ny = 2\n# \xff\ndef broken(:\n")

        with pytest.raises(ModuleLoadError) as exc_info:
            ModuleLoader(tmp_path).load_strict(path)

        causes = exc_info.value.causes
        assert [type(c) for c in causes] == [UnicodeDecodeError, SyntaxError]
        assert str(path.resolve()) in str(exc_info.value)


class TestModuleNames:
    """Tests for dotted module names."""

    def test_plain_module(self, tmp_path):
        assert module_name_for(tmp_path / "shop" / "models.py", tmp_path) == (
            "shop.models",
            False,
        )

    def test_package_init(self, tmp_path):
        assert module_name_for(tmp_path / "shop" / "__init__.py", tmp_path) == ("shop", True)

    def test_outside_root(self, tmp_path):
        assert module_name_for(tmp_path / "a" / "b.py", tmp_path / "other") == ("b", False)


def test_is_python_module(tmp_path):
    source = tmp_path / "ok.py"
    source.write_text("x = 1\n")
    text = tmp_path / "notes.txt"
    text.write_text("x = 1\n")

    assert is_python_module(source)
    assert not is_python_module(text)
    assert not is_python_module(tmp_path)


class TestInterfaceDetection:
    """Tests for is_interface_class."""

    def _class(self, source: str) -> ast.ClassDef:
        node = ast.parse(source).body[-1]
        assert isinstance(node, ast.ClassDef)
        return node

    def test_protocol(self):
        assert is_interface_class(self._class("class Greeter(Protocol):\n    x: int\n"))
        assert is_interface_class(self._class("class Box(typing.Protocol[T]):\n    pass\n"))

    def test_all_methods_abstract(self):
        source = """
class Repository(ABC):
    @abstractmethod
    def save(self): ...

    @abc.abstractmethod
    def load(self): ...
"""
        assert is_interface_class(self._class(source))

    def test_partially_abstract_is_not_interface(self):
        source = """
class Base(ABC):
    @abstractmethod
    def save(self): ...

    def helper(self):
        return 1
"""
        assert not is_interface_class(self._class(source))

    def test_no_methods_is_not_interface(self):
        assert not is_interface_class(self._class("class Marker(ABC):\n    pass\n"))


class TestCollectImports:
    """Tests for import binding collection."""

    def test_absolute_imports(self):
        tree = ast.parse(
            "import os.path\n"
            "import numpy as np\n"
            "from shop.models import Order, Line as OrderLine\n"
            "from shop.utils import *\n"
        )

        imports = collect_imports(tree, "shop.views", is_package=False)

        assert imports == {
            "os": "os",
            "np": "numpy",
            "Order": "shop.models.Order",
            "OrderLine": "shop.models.Line",
        }

    def test_relative_imports_from_module(self):
        tree = ast.parse(
            "from .models import Order\nfrom ..core import base\nfrom . import utils\n"
        )

        imports = collect_imports(tree, "shop.sales.views", is_package=False)

        assert imports == {
            "Order": "shop.sales.models.Order",
            "base": "shop.core.base",
            "utils": "shop.sales.utils",
        }

    def test_relative_imports_from_package(self):
        tree = ast.parse("from .models import Order\n")
        imports = collect_imports(tree, "shop", is_package=True)
        assert imports == {"Order": "shop.models.Order"}

    def test_relative_import_beyond_top_level_ignored(self):
        tree = ast.parse("from ...far import Away\n")
        assert collect_imports(tree, "shop.views", is_package=False) == {}
