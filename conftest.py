"""
Shared fixtures for the CAFormer Tagger tests.
"""

import io
import json
import sys
from pathlib import Path
from typing import Dict

import numpy as np
import pytest
from PIL import Image

# Add the project root to the Python path
sys.path.insert(0, str(Path(__file__).parent))

from caformer_tagger.tagging_engine import BaseInferenceEngine  # noqa: E402


# The four-tag vocabulary used across the pipeline tests
SAMPLE_TAGS_CSV = (
    "tag_id,name,category,best_threshold,count\n"
    "1,a,0,0.3,100\n"
    "2,b,0,0.6,90\n"
    "3,c,4,0.2,80\n"
    "4,d,9,0.0,70\n"
)
SAMPLE_OUTPUT_MAP = ["a", "b", "c", "d"]
SAMPLE_PROBS = [0.5, 0.7, 0.1, 0.9]


class FakeEngine(BaseInferenceEngine):
    """Engine double that returns canned outputs and remembers what it was fed."""

    def __init__(self, outputs: Dict[str, np.ndarray]):
        super().__init__()
        self.outputs = outputs
        self.calls = []
        self.closed = False

    def run(self, tensor):
        self.calls.append(tensor)
        return self.outputs

    def close(self):
        self.closed = True


@pytest.fixture
def fake_engine():
    """Factory for engines returning ``probs`` under the ``prediction`` output."""
    def factory(probs=SAMPLE_PROBS, output_name="prediction"):
        return FakeEngine({output_name: np.array([probs], dtype=np.float32)})
    return factory


@pytest.fixture
def tags_csv(tmp_path) -> Path:
    path = tmp_path / "selected_tags.csv"
    path.write_text(SAMPLE_TAGS_CSV, encoding="utf-8")
    return path


@pytest.fixture
def config_json(tmp_path) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"architecture": "caformer_b36", "tags": SAMPLE_OUTPUT_MAP}), encoding="utf-8")
    return path


@pytest.fixture
def png_bytes():
    """Encode a solid-color image as PNG bytes."""
    def factory(size=(64, 48), color=(255, 0, 0), mode="RGB"):
        buffer = io.BytesIO()
        Image.new(mode, size, color).save(buffer, format="PNG")
        return buffer.getvalue()
    return factory
