"""Pending level-up changes and the single commit that writes them to a character."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from character_model import ABILITY_CAP, ABILITY_ORDER, Character, Spellcasting
from level_up_rules import displayable_features_at_level, spell_slots_changed
from reference_data import ClassData, ClassFeature, Feat, Subclass

logger = logging.getLogger(__name__)


class CharacterSaver(Protocol):
    def auto_save(self, character: Character) -> object:
        ...


@dataclass
class PendingChanges:
    """Everything the wizard has decided but not yet written to the character."""

    hp_increase: int = 0
    subclass: Optional[Subclass] = None
    subclass_features: List[ClassFeature] = field(default_factory=list)
    ability_deltas: Dict[str, int] = field(default_factory=lambda: {ab: 0 for ab in ABILITY_ORDER})
    feat: Optional[Feat] = None
    feat_ability: str = ""
    spell_slots_acknowledged: bool = False

    def clear_subclass(self) -> None:
        self.subclass = None
        self.subclass_features = []

    def clear_ability_deltas(self) -> None:
        self.ability_deltas = {ab: 0 for ab in ABILITY_ORDER}

    def clear_feat(self) -> None:
        self.feat = None
        self.feat_ability = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "hp_increase": self.hp_increase,
            "subclass": self.subclass.name if self.subclass else None,
            "subclass_features": [f.name for f in self.subclass_features],
            "ability_deltas": {ab: d for ab, d in self.ability_deltas.items() if d},
            "feat": self.feat.name if self.feat else None,
            "feat_ability": self.feat_ability or None,
            "spell_slots_acknowledged": self.spell_slots_acknowledged,
        }


@dataclass
class CommitResult:
    saved: bool
    error: Optional[str] = None


def _raise_ability(character: Character, ability: str, amount: int) -> None:
    if amount <= 0:
        return
    current = character.ability_base(ability)
    character.set_ability_base(ability, min(ABILITY_CAP, current + amount))


def apply_level_up(character: Character, class_data: ClassData, pending: PendingChanges, new_level: int) -> Character:
    """Write every pending change into ``character`` in a fixed order."""
    old_level = new_level - 1

    character.level_up()

    character.hit_points.maximum += pending.hp_increase
    character.hit_points.current += pending.hp_increase

    if pending.subclass is not None:
        character.subclass = pending.subclass.name
        source = f"{character.char_class} ({pending.subclass.name})"
        for feature in pending.subclass_features:
            character.features.add_class_feature(feature.name, source, feature.description, feature.level)

    for ability, delta in pending.ability_deltas.items():
        _raise_ability(character, ability, delta)

    feat = pending.feat
    if feat is not None:
        character.features.add_feat(feat.name, feat.description)
        effects = feat.effects
        if pending.feat_ability and effects.ability_score_increase is not None:
            _raise_ability(character, pending.feat_ability, effects.ability_score_increase.amount)
        character.initiative += effects.initiative_bonus
        character.speed += effects.speed_bonus
        character.armor_class += effects.ac_bonus
        if effects.hp_per_level > 0:
            bonus = effects.hp_per_level * new_level
            character.hit_points.maximum += bonus
            character.hit_points.current += bonus

    if class_data.spellcaster and spell_slots_changed(class_data, old_level, new_level):
        row = class_data.spell_slot_row(new_level)
        if row is not None:
            if character.spellcasting is None:
                character.spellcasting = Spellcasting(ability=class_data.spellcasting_ability or "intelligence")
            for spell_level in range(1, 10):
                character.spellcasting.set_slots(spell_level, row.count(spell_level))

    source = f"{character.char_class} {new_level}"
    for feature in displayable_features_at_level(class_data, new_level):
        character.features.add_class_feature(feature.name, source, feature.description, new_level)

    character.mark_updated()
    return character


def commit_level_up(
    character: Character,
    class_data: ClassData,
    pending: PendingChanges,
    new_level: int,
    storage: Optional[CharacterSaver] = None,
) -> CommitResult:
    """Apply the pending changes, then save; a failed save leaves the in-memory changes in place."""
    apply_level_up(character, class_data, pending, new_level)
    logger.info("Applied level %d to %s", new_level, character.name)
    if storage is None:
        return CommitResult(saved=False)
    try:
        storage.auto_save(character)
    except Exception as exc:
        logger.warning("Failed to save %s after level up: %s", character.name, exc)
        return CommitResult(saved=False, error=str(exc))
    return CommitResult(saved=True)
