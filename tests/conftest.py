import sys
import textwrap
import uuid

import pytest


@pytest.fixture(autouse=True)
def _isolate_search_path(monkeypatch):
    monkeypatch.setattr(sys, "path", list(sys.path))
    monkeypatch.setenv("PYTHONPATH", "")


@pytest.fixture
def make_source(tmp_path, monkeypatch):
    """Write an importable extension module and return its unique name."""
    root = tmp_path / "extensions"
    root.mkdir(exist_ok=True)
    monkeypatch.syspath_prepend(str(root))

    def _make(body: str, prefix: str = "ext") -> str:
        name = f"{prefix}_{uuid.uuid4().hex[:8]}"
        (root / f"{name}.py").write_text(textwrap.dedent(body), encoding="utf-8")
        return name

    return _make
