import itertools
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Keep test runs from writing logs/app.log into the working tree.
os.environ.setdefault("APP_FILE_LOG", "0")

from heirlooms.store import ArtifactStore, CollectionStore  # noqa: E402


class FakeGenerator:
    """Stands in for SummaryGenerator; records every context it is given."""

    def __init__(self, result: Any = None, error: Optional[Exception] = None, on_call: Optional[Callable] = None):
        self.result = result if result is not None else {
            "description_markdown": "This hand-carved wooden box likely dates from around 1950.",
            "highlights": ["Given by grandmother"],
            "year_guess": 1950,
        }
        self.error = error
        self.on_call = on_call
        self.contexts: List[str] = []

    def generate(self, context: str) -> Dict[str, Any]:
        self.contexts.append(context)
        if self.on_call is not None:
            self.on_call(context)
        if self.error is not None:
            raise self.error
        return self.result


class FakeCaptioner:
    def __init__(self, caption: str = "A wooden box that appears to be hand-carved."):
        self.caption_text = caption
        self.urls: List[str] = []

    def caption(self, image_url: str) -> str:
        self.urls.append(image_url)
        return self.caption_text


def counter_clock() -> Callable[[], str]:
    ticks = itertools.count(1)
    return lambda: f"2024-01-01T00:00:{next(ticks):02d}+00:00"


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> ArtifactStore:
    return ArtifactStore(data_dir / "artifacts", clock=counter_clock())


@pytest.fixture
def collections(data_dir: Path) -> CollectionStore:
    return CollectionStore(data_dir / "collections", clock=counter_clock())


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()
