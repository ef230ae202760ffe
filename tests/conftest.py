"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import re
import sys
import tempfile
import zlib
from collections.abc import Callable, Generator
from pathlib import Path

import numpy as np
import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local quarry package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of quarry modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("quarry"):
        del sys.modules[module_name]

HASH_DIM = 64
_WORD = re.compile(r"\w+")
_PREFIX = re.compile(r"^(query|passage): ")


def _hash_embed(text: str) -> np.ndarray:
    """Deterministic bag-of-words vector: shared words mean higher cosine."""
    vec = np.zeros(HASH_DIM, dtype=np.float32)
    for word in _WORD.findall(_PREFIX.sub("", text).lower()):
        vec[zlib.crc32(word.encode()) % HASH_DIM] += 1.0
    return vec


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def hash_embed() -> Callable[[str], np.ndarray]:
    """Embedding function for TextEmbedder(embed_fn=...) without a model."""
    return _hash_embed
