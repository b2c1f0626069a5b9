from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

SCRATCH = ROOT / ".tmp_pytest"


@pytest.fixture(name="tmp_path")
def workspace_tmp_path() -> Iterator[Path]:
    """Per-test scratch directory kept under ``.tmp_pytest/`` in the checkout.

    Replaces pytest's builtin ``tmp_path`` so SQLite files and content trees
    written by tests never depend on the system temp location.
    """
    SCRATCH.mkdir(parents=True, exist_ok=True)
    path = SCRATCH / uuid4().hex
    path.mkdir()
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if SCRATCH.exists() and not any(SCRATCH.iterdir()):
            SCRATCH.rmdir()
