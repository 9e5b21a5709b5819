"""
Tag postprocessing: joins model probabilities with tag metadata and
filters them into general, character and rating groups.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from .models import CategoryPolicy, InferenceResult, TagInfo, TagRecord

GENERAL_CATEGORY = 0
CHARACTER_CATEGORY = 4
RATING_CATEGORY = 9

# Category code -> result group. Codes not listed here produce no output.
DEFAULT_CATEGORY_POLICIES: Dict[int, CategoryPolicy] = {
    GENERAL_CATEGORY: CategoryPolicy(group="general", apply_threshold=True, limit=50),
    CHARACTER_CATEGORY: CategoryPolicy(group="character", apply_threshold=True, limit=30),
    # Ratings are a small closed set: report every one, unthresholded
    RATING_CATEGORY: CategoryPolicy(group="rating", apply_threshold=False, limit=None),
}


class TagLookupError(LookupError):
    """Raised when a predicted tag has no metadata record."""
    pass


def build_category_policies(
    general_limit: Optional[int] = None,
    character_limit: Optional[int] = None,
) -> Dict[int, CategoryPolicy]:
    """Get the default policies with the general/character caps overridden."""
    policies = dict(DEFAULT_CATEGORY_POLICIES)
    if general_limit is not None:
        policies[GENERAL_CATEGORY] = policies[GENERAL_CATEGORY].model_copy(update={"limit": general_limit})
    if character_limit is not None:
        policies[CHARACTER_CATEGORY] = policies[CHARACTER_CATEGORY].model_copy(update={"limit": character_limit})
    return policies


def rank_predictions(probs: Sequence[float], output_map: Sequence[str]) -> List[Tuple[float, str]]:
    """Pair scores with tag names and sort by descending score.

    The sort is stable: equal scores keep their output-index order.
    """
    if len(probs) != len(output_map):
        raise ValueError(
            f"Probability vector has {len(probs)} values but the output map names {len(output_map)} tags"
        )
    scores = [float(p) for p in probs]
    return sorted(zip(scores, output_map), key=lambda pair: pair[0], reverse=True)


def filter_ranked(
    ranked: Sequence[Tuple[float, str]],
    tag_metadata: Mapping[str, TagRecord],
    policies: Optional[Mapping[int, CategoryPolicy]] = None,
) -> InferenceResult:
    """Split ranked predictions into result groups according to ``policies``."""
    if policies is None:
        policies = DEFAULT_CATEGORY_POLICIES

    groups: Dict[str, List[TagInfo]] = {"general": [], "character": [], "rating": []}
    for policy in policies.values():
        groups.setdefault(policy.group, [])

    for score, name in ranked:
        try:
            record = tag_metadata[name]
        except KeyError:
            raise TagLookupError(f"Tag '{name}' from the output map has no metadata record") from None

        policy = policies.get(record.category)
        if policy is None:
            continue
        if policy.apply_threshold and not score > record.best_threshold:
            continue

        bucket = groups[policy.group]
        if policy.limit is not None and len(bucket) >= policy.limit:
            continue
        bucket.append(TagInfo(label=name, score=score))

    return InferenceResult(
        general=groups["general"],
        character=groups["character"],
        rating=groups["rating"],
    )


def get_tags_from_probs(
    probs: Sequence[float],
    output_map: Sequence[str],
    tag_metadata: Mapping[str, TagRecord],
    policies: Optional[Mapping[int, CategoryPolicy]] = None,
) -> InferenceResult:
    """Turn a raw probability vector into ranked, filtered tag groups."""
    return filter_ranked(rank_predictions(probs, output_map), tag_metadata, policies)
