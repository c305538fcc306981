"""Level-up wizard: step navigation plus one small state machine per step.

The wizard never touches the character until the Confirm step is approved;
every decision is kept in a ``PendingChanges`` record until then.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from character_model import ABILITY_CAP, ABILITY_NAMES, ABILITY_ORDER, MAX_LEVEL, Character
from level_up_apply import CharacterSaver, PendingChanges, commit_level_up
from level_up_rules import Step, displayable_features_at_level, parse_die_size, plan_steps
from reference_data import ClassData, ClassFeature, Feat, ReferenceDataError

logger = logging.getLogger(__name__)


class Action(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    SELECT = "select"
    BACK = "back"
    TAB = "tab"
    TEXT = "text"
    BACKSPACE = "backspace"
    QUIT = "quit"
    RESIZE = "resize"


class WizardSignal(Enum):
    NONE = "none"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Transition(Enum):
    STAY = "stay"
    ADVANCE = "advance"
    RETREAT = "retreat"
    ABANDON = "abandon"


@dataclass
class StepResult:
    transition: Transition = Transition.STAY
    error: Optional[str] = None


STAY = StepResult()
ADVANCE = StepResult(Transition.ADVANCE)
RETREAT = StepResult(Transition.RETREAT)


def _rejected(message: str) -> StepResult:
    return StepResult(Transition.STAY, message)


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int:
        ...


class ReferenceLookup(Protocol):
    def find_class(self, name: str) -> ClassData:
        ...

    def get_feats(self) -> List[Feat]:
        ...


# ---------------------------------------------------------------------------
# Hit points
# ---------------------------------------------------------------------------


class HitPointMethod(Enum):
    ROLL = 0
    AVERAGE = 1


class HitPointStep:
    """ChoosingMethod until a roll/average is locked in, then Locked."""

    def __init__(self, pending: PendingChanges, die_size: int, con_mod: int, rng: RandomSource) -> None:
        self._pending = pending
        self._rng = rng
        self.die_size = die_size
        self.con_mod = con_mod
        self.cursor = 0
        self.locked = False
        self.raw_result = 0

    @property
    def method(self) -> HitPointMethod:
        return HitPointMethod(self.cursor)

    def average(self) -> int:
        return self.die_size // 2 + 1

    def reset(self) -> None:
        self.locked = False
        self.raw_result = 0
        self._pending.hp_increase = 0

    def lock(self) -> int:
        if self.method is HitPointMethod.ROLL:
            self.raw_result = self._rng.randint(1, self.die_size)
        else:
            self.raw_result = self.average()
        self._pending.hp_increase = max(1, self.raw_result + self.con_mod)
        self.locked = True
        return self._pending.hp_increase

    def is_complete(self) -> bool:
        return self.locked

    def handle(self, action: Action, text: str = "") -> StepResult:
        if action is Action.UP:
            if not self.locked and self.cursor > 0:
                self.cursor -= 1
            return STAY
        if action is Action.DOWN:
            if not self.locked and self.cursor < len(HitPointMethod) - 1:
                self.cursor += 1
            return STAY
        if action is Action.SELECT:
            if self.locked:
                return ADVANCE
            self.lock()
            return STAY
        if action is Action.BACK:
            if self.locked:
                self.reset()
                return STAY
            return StepResult(Transition.ABANDON)
        return STAY

    def snapshot(self) -> Dict[str, Any]:
        return {
            "cursor": self.cursor,
            "method": self.method.name.lower(),
            "locked": self.locked,
            "raw_result": self.raw_result,
            "die_size": self.die_size,
            "con_mod": self.con_mod,
            "average": self.average(),
        }


# ---------------------------------------------------------------------------
# Subclass
# ---------------------------------------------------------------------------


class SubclassStep:
    def __init__(self, pending: PendingChanges, class_data: Optional[ClassData], new_level: int) -> None:
        self._pending = pending
        self.subclasses = list(class_data.subclasses) if class_data else []
        self.new_level = new_level
        self.cursor = 0

    def clear(self) -> None:
        self._pending.clear_subclass()

    def is_complete(self) -> bool:
        return self._pending.subclass is not None

    def handle(self, action: Action, text: str = "") -> StepResult:
        if action is Action.UP:
            if self.cursor > 0:
                self.cursor -= 1
            return STAY
        if action is Action.DOWN:
            if self.cursor < len(self.subclasses) - 1:
                self.cursor += 1
            return STAY
        if action is Action.SELECT:
            if not self.subclasses:
                return _rejected("No subclasses available.")
            chosen = self.subclasses[self.cursor]
            self._pending.subclass = chosen
            self._pending.subclass_features = [f for f in chosen.features if f.level <= self.new_level]
            return ADVANCE
        if action is Action.BACK:
            self.clear()
            return RETREAT
        return STAY

    def snapshot(self) -> Dict[str, Any]:
        return {
            "cursor": self.cursor,
            "options": [sc.name for sc in self.subclasses],
            "selected": self._pending.subclass.name if self._pending.subclass else None,
        }


# ---------------------------------------------------------------------------
# Ability score improvement / feat
# ---------------------------------------------------------------------------


class AbilityTab(Enum):
    ASI = "asi"
    FEAT = "feat"


class AsiPattern(Enum):
    PLUS_TWO = "plus_two"
    PLUS_ONE_PLUS_ONE = "plus_one_plus_one"


CONTINUE_ROW = len(ABILITY_ORDER)


class AbilityFeatStep:
    """Two tabs: an ASI allocation (+2 or +1/+1) or a feat picked from a filtered list."""

    def __init__(self, pending: PendingChanges, character: Character, feats: List[Feat]) -> None:
        self._pending = pending
        self._character = character
        self._feats = list(feats)
        self.tab = AbilityTab.ASI
        self.pattern = AsiPattern.PLUS_TWO
        self.cursor = 0
        self.selected: List[str] = []
        self.filter_text = ""
        self.filtered_feats: List[Feat] = list(self._feats)
        self.feat_cursor = 0
        self.in_feat_prompt = False
        self.prompt_cursor = 0

    # ---------- shared ----------

    def _reset_selections(self) -> None:
        self.selected = []
        self._pending.clear_ability_deltas()
        self._pending.clear_feat()
        self.in_feat_prompt = False
        self.prompt_cursor = 0

    def asi_complete(self) -> bool:
        wanted = 1 if self.pattern is AsiPattern.PLUS_TWO else 2
        return len(self.selected) == wanted

    def feat_complete(self) -> bool:
        feat = self._pending.feat
        if feat is None or self.in_feat_prompt:
            return False
        asi = feat.effects.ability_score_increase
        return asi is None or bool(self._pending.feat_ability)

    def is_complete(self) -> bool:
        if self.tab is AbilityTab.ASI:
            return self.asi_complete()
        return self.feat_complete()

    def handle(self, action: Action, text: str = "") -> StepResult:
        if self.in_feat_prompt:
            return self._handle_feat_prompt(action)
        if action is Action.TAB:
            self.tab = AbilityTab.FEAT if self.tab is AbilityTab.ASI else AbilityTab.ASI
            self._reset_selections()
            return STAY
        if action is Action.BACK:
            return RETREAT
        if self.tab is AbilityTab.ASI:
            return self._handle_asi(action)
        return self._handle_feat(action, text)

    # ---------- ASI tab ----------

    def set_pattern(self, pattern: AsiPattern) -> None:
        if pattern is self.pattern:
            return
        self.pattern = pattern
        self.selected = []
        self._pending.clear_ability_deltas()

    def toggle_ability(self, ability: str) -> StepResult:
        current = self._character.ability_base(ability)
        if current >= ABILITY_CAP:
            return _rejected(f"{ABILITY_NAMES[ability]} is already at {ABILITY_CAP}.")
        deltas = self._pending.ability_deltas
        if self.pattern is AsiPattern.PLUS_TWO:
            if ability in self.selected:
                self.selected = []
                self._pending.clear_ability_deltas()
            else:
                self._pending.clear_ability_deltas()
                self.selected = [ability]
                deltas[ability] = min(2, ABILITY_CAP - current)
            return STAY
        if ability in self.selected:
            self.selected.remove(ability)
            deltas[ability] = 0
            return STAY
        if len(self.selected) >= 2:
            return _rejected("Already selected 2 abilities; deselect one first.")
        self.selected.append(ability)
        deltas[ability] = min(1, ABILITY_CAP - current)
        return STAY

    def _handle_asi(self, action: Action) -> StepResult:
        if action is Action.UP:
            if self.cursor > 0:
                self.cursor -= 1
            return STAY
        if action is Action.DOWN:
            if self.cursor < CONTINUE_ROW:
                self.cursor += 1
            return STAY
        if action is Action.LEFT:
            self.set_pattern(AsiPattern.PLUS_TWO)
            return STAY
        if action is Action.RIGHT:
            self.set_pattern(AsiPattern.PLUS_ONE_PLUS_ONE)
            return STAY
        if action is Action.SELECT:
            if self.cursor == CONTINUE_ROW:
                if self.asi_complete():
                    return ADVANCE
                if self.pattern is AsiPattern.PLUS_TWO:
                    return _rejected("Choose one ability to increase by 2.")
                return _rejected("Choose two abilities to increase by 1.")
            return self.toggle_ability(ABILITY_ORDER[self.cursor])
        return STAY

    # ---------- feat tab ----------

    def rebuild_filtered_feats(self) -> None:
        needle = self.filter_text.lower()
        self.filtered_feats = [f for f in self._feats if not needle or needle in f.name.lower()]
        if self.feat_cursor >= len(self.filtered_feats):
            self.feat_cursor = 0

    def _handle_feat(self, action: Action, text: str) -> StepResult:
        if action is Action.UP:
            if self.feat_cursor > 0:
                self.feat_cursor -= 1
            return STAY
        if action is Action.DOWN:
            if self.feat_cursor < len(self.filtered_feats) - 1:
                self.feat_cursor += 1
            return STAY
        if action is Action.TEXT:
            if text:
                self.filter_text += text
                self.rebuild_filtered_feats()
            return STAY
        if action is Action.BACKSPACE:
            if self.filter_text:
                self.filter_text = self.filter_text[:-1]
                self.rebuild_filtered_feats()
            return STAY
        if action is Action.SELECT:
            if not self.filtered_feats:
                return _rejected("No feats match the current search.")
            feat = self.filtered_feats[self.feat_cursor]
            self._pending.clear_feat()
            self._pending.feat = feat
            asi = feat.effects.ability_score_increase
            if asi is not None and len(asi.options) > 1:
                self.in_feat_prompt = True
                self.prompt_cursor = 0
                return STAY
            if asi is not None:
                self._pending.feat_ability = asi.options[0]
            return ADVANCE
        return STAY

    def prompt_options(self) -> List[str]:
        feat = self._pending.feat
        if feat is None or feat.effects.ability_score_increase is None:
            return []
        return list(feat.effects.ability_score_increase.options)

    def _handle_feat_prompt(self, action: Action) -> StepResult:
        options = self.prompt_options()
        if not options:
            self.in_feat_prompt = False
            return STAY
        if action is Action.UP:
            if self.prompt_cursor > 0:
                self.prompt_cursor -= 1
            return STAY
        if action is Action.DOWN:
            if self.prompt_cursor < len(options) - 1:
                self.prompt_cursor += 1
            return STAY
        if action is Action.SELECT:
            self._pending.feat_ability = options[self.prompt_cursor]
            self.in_feat_prompt = False
            return ADVANCE
        if action is Action.BACK:
            self.in_feat_prompt = False
            self._pending.clear_feat()
            return STAY
        return STAY

    def snapshot(self) -> Dict[str, Any]:
        return {
            "tab": self.tab.value,
            "pattern": self.pattern.value,
            "cursor": self.cursor,
            "on_continue": self.cursor == CONTINUE_ROW,
            "selected": list(self.selected),
            "complete": self.is_complete(),
            "filter": self.filter_text,
            "feats": [
                {"name": f.name, "prerequisite": f.prerequisite, "description": f.description}
                for f in self.filtered_feats
            ],
            "feat_cursor": self.feat_cursor,
            "in_feat_prompt": self.in_feat_prompt,
            "prompt_options": self.prompt_options() if self.in_feat_prompt else [],
            "prompt_cursor": self.prompt_cursor,
        }


# ---------------------------------------------------------------------------
# Review steps
# ---------------------------------------------------------------------------


class FeatureReviewStep:
    def __init__(self, pending: PendingChanges, class_features: List[ClassFeature]) -> None:
        self._pending = pending
        self.class_features = list(class_features)
        self.offset = 0

    def entries(self) -> List[ClassFeature]:
        return self.class_features + list(self._pending.subclass_features)

    def is_complete(self) -> bool:
        return True

    def handle(self, action: Action, text: str = "") -> StepResult:
        if action is Action.UP:
            if self.offset > 0:
                self.offset -= 1
            return STAY
        if action is Action.DOWN:
            if self.offset < len(self.entries()) - 1:
                self.offset += 1
            return STAY
        if action is Action.SELECT:
            return ADVANCE
        if action is Action.BACK:
            return RETREAT
        return STAY

    def snapshot(self) -> Dict[str, Any]:
        return {
            "offset": self.offset,
            "entries": [{"name": f.name, "level": f.level, "description": f.description} for f in self.entries()],
        }


class SpellSlotReviewStep:
    def __init__(self, pending: PendingChanges, class_data: Optional[ClassData], old_level: int, new_level: int) -> None:
        self._pending = pending
        self.old_row = class_data.spell_slot_row(old_level) if class_data else None
        self.new_row = class_data.spell_slot_row(new_level) if class_data else None

    def comparison(self) -> List[Tuple[int, int, int]]:
        rows = []
        for spell_level in range(1, 10):
            old = self.old_row.count(spell_level) if self.old_row else 0
            new = self.new_row.count(spell_level) if self.new_row else 0
            if old or new:
                rows.append((spell_level, old, new))
        return rows

    def is_complete(self) -> bool:
        return True

    def handle(self, action: Action, text: str = "") -> StepResult:
        if action is Action.SELECT:
            self._pending.spell_slots_acknowledged = True
            return ADVANCE
        if action is Action.BACK:
            return RETREAT
        return STAY

    def snapshot(self) -> Dict[str, Any]:
        return {"slots": [{"spell_level": lvl, "old": old, "new": new} for lvl, old, new in self.comparison()]}


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------


class LevelUpWizard:
    def __init__(
        self,
        character: Character,
        reference: ReferenceLookup,
        storage: Optional[CharacterSaver] = None,
        rng: Optional[RandomSource] = None,
    ) -> None:
        self.character = character
        self.storage = storage
        self.old_level = int(character.level)
        self.new_level = self.old_level + 1
        self.pending = PendingChanges()
        self.class_data: Optional[ClassData] = None
        self.feats: List[Feat] = []
        self.load_error = ""
        self.error = ""
        self.save_error = ""
        self.finished = False
        self.width = 0
        self.height = 0

        if self.old_level >= MAX_LEVEL:
            self.load_error = f"{character.name} is already at the maximum level ({MAX_LEVEL})."
        else:
            try:
                self.class_data = reference.find_class(character.char_class)
            except ReferenceDataError as exc:
                self.load_error = f"Failed to load class data: {exc}"
        if self.load_error:
            logger.warning("Level up unavailable for %s: %s", character.name, self.load_error)
        else:
            try:
                self.feats = list(reference.get_feats())
            except ReferenceDataError as exc:
                logger.warning("Feat list unavailable, feat tab will be empty: %s", exc)

        self.steps: List[Step] = plan_steps(self.class_data, self.old_level, self.new_level, character.subclass)
        self.step_index = 0
        logger.info(
            "Level up %s %d -> %d: %s",
            character.name,
            self.old_level,
            self.new_level,
            ", ".join(step.title for step in self.steps),
        )

        die_size = parse_die_size(self.class_data.hit_dice if self.class_data else None)
        self.hit_points = HitPointStep(self.pending, die_size, character.ability_mod("constitution"), rng or random.Random())
        self.subclass = SubclassStep(self.pending, self.class_data, self.new_level)
        self.ability_feat = AbilityFeatStep(self.pending, character, self.feats)
        self.feature_review = FeatureReviewStep(
            self.pending, displayable_features_at_level(self.class_data, self.new_level)
        )
        self.spell_slots = SpellSlotReviewStep(self.pending, self.class_data, self.old_level, self.new_level)
        self._handlers = {
            Step.HIT_POINTS: self.hit_points,
            Step.SUBCLASS: self.subclass,
            Step.ABILITY_OR_FEAT: self.ability_feat,
            Step.FEATURE_REVIEW: self.feature_review,
            Step.SPELL_SLOT_REVIEW: self.spell_slots,
        }

    @property
    def current_step(self) -> Step:
        return self.steps[self.step_index]

    # ---------- navigation ----------

    def advance(self) -> None:
        if self.step_index < len(self.steps) - 1:
            self.step_index += 1

    def retreat(self) -> None:
        if self.step_index == 0:
            return
        self.step_index -= 1
        # Returning to an earlier decision reopens it.
        if self.current_step is Step.HIT_POINTS:
            self.hit_points.reset()
        elif self.current_step is Step.SUBCLASS:
            self.subclass.clear()

    def step_complete(self, step: Optional[Step] = None) -> bool:
        handler = self._handlers.get(step or self.current_step)
        return handler.is_complete() if handler is not None else True

    # ---------- input ----------

    def handle(self, action: Action, text: str = "", width: int = 0, height: int = 0) -> WizardSignal:
        if self.finished:
            return WizardSignal.NONE
        if action is Action.RESIZE:
            self.width = int(width or 0)
            self.height = int(height or 0)
            return WizardSignal.NONE
        if action is Action.QUIT:
            return self._finish(WizardSignal.ABANDONED)

        if self.current_step is Step.CONFIRM:
            return self._handle_confirm(action)

        result = self._handlers[self.current_step].handle(action, text)
        self.error = result.error or ""
        if result.transition is Transition.ADVANCE:
            if self.step_complete():
                self.advance()
        elif result.transition is Transition.RETREAT:
            self.retreat()
        elif result.transition is Transition.ABANDON:
            return self._finish(WizardSignal.ABANDONED)
        return WizardSignal.NONE

    def _handle_confirm(self, action: Action) -> WizardSignal:
        if action is Action.SELECT:
            if self.load_error:
                return self._finish(WizardSignal.ABANDONED)
            return self.commit()
        if action is Action.BACK:
            if self.load_error:
                return self._finish(WizardSignal.ABANDONED)
            self.error = ""
            self.retreat()
        return WizardSignal.NONE

    def commit(self) -> WizardSignal:
        if self.load_error or self.class_data is None or self.finished:
            return WizardSignal.NONE
        result = commit_level_up(self.character, self.class_data, self.pending, self.new_level, self.storage)
        self.save_error = result.error or ""
        return self._finish(WizardSignal.COMPLETED)

    def _finish(self, signal: WizardSignal) -> WizardSignal:
        self.finished = True
        if signal is WizardSignal.ABANDONED:
            logger.info("Level up abandoned for %s", self.character.name)
        return signal

    # ---------- state for surfaces ----------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "character": self.character.name,
            "class": self.character.char_class,
            "old_level": self.old_level,
            "new_level": self.new_level,
            "steps": [step.value for step in self.steps],
            "step_index": self.step_index,
            "current_step": self.current_step.value,
            "step_title": self.current_step.title,
            "error": self.error or None,
            "load_error": self.load_error or None,
            "save_error": self.save_error or None,
            "finished": self.finished,
            "pending": self.pending.to_dict(),
            "hit_points": self.hit_points.snapshot(),
            "subclass": self.subclass.snapshot(),
            "ability_feat": self.ability_feat.snapshot(),
            "feature_review": self.feature_review.snapshot(),
            "spell_slots": self.spell_slots.snapshot(),
        }
