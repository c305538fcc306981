import unittest

from character_model import Character, HitDice, HitPoints, Spellcasting
from level_up_apply import PendingChanges, apply_level_up, commit_level_up
from reference_data import (
    AbilityScoreIncrease,
    ClassData,
    ClassFeature,
    Feat,
    FeatEffects,
    ReferenceData,
    SpellSlotRow,
    Subclass,
)


class _Storage:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def auto_save(self, character):
        self.calls += 1
        if self.error is not None:
            raise self.error


def _character(char_class="Fighter", level=3, **scores):
    char = Character(name="Brindle", char_class=char_class, level=level, subclass="Champion")
    char.ability_scores.update(scores)
    char.hit_points = HitPoints(maximum=30, current=25)
    char.hit_dice = HitDice(total=level, remaining=1, die_type="d10")
    return char


class ApplyLevelUpTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.reference = ReferenceData()
        cls.fighter = cls.reference.find_class("Fighter")

    def test_level_hit_points_and_hit_dice(self):
        char = _character()
        pending = PendingChanges(hp_increase=7)
        apply_level_up(char, self.fighter, pending, 4)
        self.assertEqual(char.level, 4)
        self.assertEqual(char.hit_points.maximum, 37)
        self.assertEqual(char.hit_points.current, 32)
        self.assertEqual(char.hit_dice.total, 4)
        self.assertEqual(char.hit_dice.remaining, 1)

    def test_ability_deltas_never_exceed_twenty(self):
        char = _character(strength=19, dexterity=18)
        pending = PendingChanges()
        pending.ability_deltas["strength"] = 2
        pending.ability_deltas["dexterity"] = 1
        apply_level_up(char, self.fighter, pending, 4)
        self.assertEqual(char.ability_scores["strength"], 20)
        self.assertEqual(char.ability_scores["dexterity"], 19)

    def test_asi_feature_is_not_recorded(self):
        char = _character()
        apply_level_up(char, self.fighter, PendingChanges(), 4)
        self.assertEqual(char.features.class_features, [])

    def test_class_features_use_level_source(self):
        char = _character(level=4)
        apply_level_up(char, self.fighter, PendingChanges(), 5)
        self.assertEqual([(f.name, f.source, f.level) for f in char.features.class_features], [("Extra Attack", "Fighter 5", 5)])

    def test_subclass_features_recorded_before_class_features(self):
        cls = ClassData(
            name="Ranger",
            features=[ClassFeature(3, "Primeval Awareness")],
            subclasses=[Subclass("Hunter", [ClassFeature(3, "Hunter's Prey")])],
        )
        char = Character(name="Wren", char_class="Ranger", level=2)
        pending = PendingChanges(subclass=cls.subclasses[0], subclass_features=list(cls.subclasses[0].features))
        apply_level_up(char, cls, pending, 3)
        self.assertEqual(char.subclass, "Hunter")
        self.assertEqual(
            [(f.name, f.source) for f in char.features.class_features],
            [("Hunter's Prey", "Ranger (Hunter)"), ("Primeval Awareness", "Ranger 3")],
        )

    def test_feat_effects(self):
        feat = Feat(
            name="Swift Guard",
            description="Quick on your feet.",
            effects=FeatEffects(
                ability_score_increase=AbilityScoreIncrease(["dexterity", "wisdom"], 1),
                initiative_bonus=2,
                speed_bonus=5,
                ac_bonus=1,
                hp_per_level=1,
            ),
        )
        char = _character(wisdom=20)
        char.armor_class, char.initiative, char.speed = 15, 1, 30
        pending = PendingChanges(hp_increase=5, feat=feat, feat_ability="wisdom")
        apply_level_up(char, self.fighter, pending, 4)
        self.assertEqual(char.ability_scores["wisdom"], 20)
        self.assertEqual(char.ability_scores["dexterity"], 10)
        self.assertEqual((char.armor_class, char.initiative, char.speed), (16, 3, 35))
        self.assertEqual(char.hit_points.maximum, 30 + 5 + 4)
        self.assertEqual([(f.name, f.source) for f in char.features.feats], [("Swift Guard", "Feat")])

    def test_existing_spellcasting_keeps_ability_and_updates_slots(self):
        wizard = self.reference.find_class("Wizard")
        char = _character(char_class="Wizard", level=4)
        char.spellcasting = Spellcasting(ability="intelligence")
        char.spellcasting.set_slots(1, 4)
        char.spellcasting.set_slots(2, 3)
        char.spellcasting.slots[1].remaining = 1
        apply_level_up(char, wizard, PendingChanges(spell_slots_acknowledged=True), 5)
        self.assertEqual(char.spellcasting.slot_total(1), 4)
        self.assertEqual(char.spellcasting.slots[1].remaining, 4)
        self.assertEqual(char.spellcasting.slot_total(3), 2)
        self.assertEqual(char.spellcasting.ability, "intelligence")

    def test_slot_table_ending_before_new_level_leaves_slots_alone(self):
        cls = ClassData(name="Adept", spellcaster=True, spellcasting_ability="wisdom", spell_slots=[SpellSlotRow(1, {1: 2})])
        char = Character(name="Ode", char_class="Adept", level=1)
        apply_level_up(char, cls, PendingChanges(), 2)
        self.assertIsNone(char.spellcasting)

    def test_non_caster_gets_no_spellcasting(self):
        char = _character()
        apply_level_up(char, self.fighter, PendingChanges(), 4)
        self.assertIsNone(char.spellcasting)


class CommitLevelUpTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.fighter = ReferenceData().find_class("Fighter")

    def test_commit_without_storage_applies_only(self):
        char = _character()
        result = commit_level_up(char, self.fighter, PendingChanges(hp_increase=3), 4)
        self.assertFalse(result.saved)
        self.assertIsNone(result.error)
        self.assertEqual(char.level, 4)

    def test_commit_saves_once(self):
        storage = _Storage()
        result = commit_level_up(_character(), self.fighter, PendingChanges(), 4, storage)
        self.assertTrue(result.saved)
        self.assertEqual(storage.calls, 1)

    def test_failed_save_keeps_applied_changes(self):
        char = _character()
        storage = _Storage(error=OSError("read-only file system"))
        with self.assertLogs("level_up_apply", level="WARNING"):
            result = commit_level_up(char, self.fighter, PendingChanges(hp_increase=4), 4, storage)
        self.assertFalse(result.saved)
        self.assertIn("read-only", result.error)
        self.assertEqual(char.level, 4)
        self.assertEqual(char.hit_points.maximum, 34)


if __name__ == "__main__":
    unittest.main()
