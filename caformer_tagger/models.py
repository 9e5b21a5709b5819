"""
Data models for the CAFormer Tagger.
"""

from typing import List, Optional
import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TagRecord(BaseModel):
    """One row of the tag vocabulary (selected_tags.csv)."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    category: int
    best_threshold: float = Field(ge=0.0, le=1.0)

    @field_validator("best_threshold")
    @classmethod
    def round_to_float32(cls, v):
        """Thresholds are compared against float32 scores, so store them at float32 precision."""
        return float(np.float32(v))


class TagInfo(BaseModel):
    """A predicted tag and its probability."""
    model_config = ConfigDict(frozen=True)

    label: str
    score: float

    def __str__(self):
        return f"{self.label} ({self.score:.2%})"


class InferenceResult(BaseModel):
    """Ranked tags for one image, split by group. Each list is ordered by descending score."""
    model_config = ConfigDict(frozen=True)

    general: List[TagInfo] = []
    character: List[TagInfo] = []
    rating: List[TagInfo] = []

    def all_tags(self) -> List[TagInfo]:
        """Get every reported tag, character tags first, then general, then rating."""
        return [*self.character, *self.general, *self.rating]

    def top_rating(self) -> Optional[TagInfo]:
        """Get the highest-scoring rating tag, if any."""
        return self.rating[0] if self.rating else None


class TimmConfig(BaseModel):
    """The part of the model's config.json that maps output positions to tag names."""
    model_config = ConfigDict(extra="ignore")

    tags: List[str]


class CategoryPolicy(BaseModel):
    """How predictions of one tag category are filtered into a result group."""
    model_config = ConfigDict(frozen=True)

    group: str  # "general", "character" or "rating"
    apply_threshold: bool = True
    limit: Optional[int] = Field(default=None, gt=0)
