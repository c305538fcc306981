"""Which level-up steps apply to a class/level transition.

Everything here is a pure function of the class data and the old/new level,
so the step plan can be computed (and tested) without any wizard state.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence

from reference_data import ClassData, ClassFeature

ASI_FEATURE_NAME = "Ability Score Improvement"
DEFAULT_DIE_SIZE = 8

DEFAULT_SUBCLASS_TRIGGER_KEYWORDS = (
    "archetype",
    "subclass",
    "tradition",
    "oath",
    "patron",
    "origin",
    "domain",
    "circle",
    "conclave",
    "college",
    "path",
    "school",
)


class Step(Enum):
    HIT_POINTS = "hit_points"
    SUBCLASS = "subclass"
    ABILITY_OR_FEAT = "ability_or_feat"
    FEATURE_REVIEW = "feature_review"
    SPELL_SLOT_REVIEW = "spell_slot_review"
    CONFIRM = "confirm"

    @property
    def title(self) -> str:
        return STEP_TITLES[self]


STEP_TITLES = {
    Step.HIT_POINTS: "Hit Points",
    Step.SUBCLASS: "Subclass",
    Step.ABILITY_OR_FEAT: "Ability Score / Feat",
    Step.FEATURE_REVIEW: "New Features",
    Step.SPELL_SLOT_REVIEW: "Spell Slots",
    Step.CONFIRM: "Confirm",
}

# Canonical order; planned steps are always a filtered copy of this.
STEP_ORDER = (
    Step.HIT_POINTS,
    Step.SUBCLASS,
    Step.ABILITY_OR_FEAT,
    Step.FEATURE_REVIEW,
    Step.SPELL_SLOT_REVIEW,
    Step.CONFIRM,
)


def parse_die_size(hit_dice: Optional[str]) -> int:
    """Die size from text like "1d10" or "d10"; unparsable text means a d8."""
    text = str(hit_dice or "").strip().lower()
    idx = text.find("d")
    if idx < 0:
        return DEFAULT_DIE_SIZE
    try:
        size = int(text[idx + 1:])
    except ValueError:
        return DEFAULT_DIE_SIZE
    return size if size > 0 else DEFAULT_DIE_SIZE


def first_subclass_level(class_data: Optional[ClassData]) -> int:
    """Lowest feature level of the first listed subclass, or 0 when there is none."""
    if class_data is None or not class_data.subclasses:
        return 0
    features = class_data.subclasses[0].features
    if not features:
        return 0
    return min(f.level for f in features)


def subclass_trigger_keywords(class_data: Optional[ClassData]) -> Sequence[str]:
    if class_data is not None and class_data.subclass_trigger_keywords is not None:
        return class_data.subclass_trigger_keywords
    return DEFAULT_SUBCLASS_TRIGGER_KEYWORDS


def is_subclass_trigger_feature(class_data: Optional[ClassData], feature: ClassFeature) -> bool:
    lower = feature.name.lower()
    if not any(keyword in lower for keyword in subclass_trigger_keywords(class_data)):
        return False
    trigger_level = first_subclass_level(class_data)
    return trigger_level > 0 and feature.level == trigger_level


def displayable_features_at_level(class_data: Optional[ClassData], level: int) -> List[ClassFeature]:
    if class_data is None:
        return []
    return [
        f
        for f in class_data.features_at_level(level)
        if f.name != ASI_FEATURE_NAME and not is_subclass_trigger_feature(class_data, f)
    ]


def spell_slots_changed(class_data: Optional[ClassData], old_level: int, new_level: int) -> bool:
    if class_data is None:
        return False
    old_row = class_data.spell_slot_row(old_level)
    new_row = class_data.spell_slot_row(new_level)
    if old_row is None and new_row is None:
        return False
    if old_row is None or new_row is None:
        return True
    return any(old_row.count(lvl) != new_row.count(lvl) for lvl in range(1, 10))


def needs_subclass(class_data: Optional[ClassData], new_level: int, current_subclass: str) -> bool:
    if class_data is None or not class_data.subclasses or (current_subclass or "").strip():
        return False
    trigger_level = first_subclass_level(class_data)
    return trigger_level > 0 and new_level == trigger_level


def needs_ability_or_feat(class_data: Optional[ClassData], new_level: int) -> bool:
    return class_data is not None and class_data.has_feature_at_level(ASI_FEATURE_NAME, new_level)


def needs_feature_review(class_data: Optional[ClassData], new_level: int) -> bool:
    return bool(displayable_features_at_level(class_data, new_level))


def needs_spell_slot_review(class_data: Optional[ClassData], old_level: int, new_level: int) -> bool:
    return class_data is not None and class_data.spellcaster and spell_slots_changed(class_data, old_level, new_level)


def plan_steps(
    class_data: Optional[ClassData],
    old_level: int,
    new_level: int,
    current_subclass: str = "",
) -> List[Step]:
    """Ordered steps for one level-up; a missing class yields only Confirm."""
    if class_data is None:
        return [Step.CONFIRM]
    included = {
        Step.HIT_POINTS: True,
        Step.SUBCLASS: needs_subclass(class_data, new_level, current_subclass),
        Step.ABILITY_OR_FEAT: needs_ability_or_feat(class_data, new_level),
        Step.FEATURE_REVIEW: needs_feature_review(class_data, new_level),
        Step.SPELL_SLOT_REVIEW: needs_spell_slot_review(class_data, old_level, new_level),
        Step.CONFIRM: True,
    }
    return [step for step in STEP_ORDER if included[step]]
