import unittest

from level_up_rules import (
    Step,
    displayable_features_at_level,
    first_subclass_level,
    is_subclass_trigger_feature,
    parse_die_size,
    plan_steps,
    spell_slots_changed,
)
from reference_data import ClassData, ClassFeature, ReferenceData, SpellSlotRow, Subclass


def _commoner() -> ClassData:
    return ClassData(
        name="Commoner",
        hit_dice="1d8",
        features=[
            ClassFeature(2, "Martial Archetype"),
            ClassFeature(4, "Ability Score Improvement"),
        ],
    )


class LevelUpRulesTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.reference = ReferenceData()

    def test_fighter_step_plans(self):
        fighter = self.reference.find_class("Fighter")
        self.assertEqual(plan_steps(fighter, 1, 2, ""), [Step.HIT_POINTS, Step.FEATURE_REVIEW, Step.CONFIRM])
        self.assertEqual(plan_steps(fighter, 2, 3, ""), [Step.HIT_POINTS, Step.SUBCLASS, Step.CONFIRM])
        self.assertEqual(plan_steps(fighter, 2, 3, "Champion"), [Step.HIT_POINTS, Step.CONFIRM])
        self.assertEqual(plan_steps(fighter, 3, 4, "Champion"), [Step.HIT_POINTS, Step.ABILITY_OR_FEAT, Step.CONFIRM])

    def test_wizard_level_two_offers_subclass_and_spell_slots(self):
        wizard = self.reference.find_class("Wizard")
        self.assertEqual(
            plan_steps(wizard, 1, 2, ""),
            [Step.HIT_POINTS, Step.SUBCLASS, Step.SPELL_SLOT_REVIEW, Step.CONFIRM],
        )
        self.assertEqual(
            plan_steps(wizard, 3, 4, "School of Evocation"),
            [Step.HIT_POINTS, Step.ABILITY_OR_FEAT, Step.SPELL_SLOT_REVIEW, Step.CONFIRM],
        )

    def test_level_one_subclass_is_never_offered_on_level_up(self):
        cleric = self.reference.find_class("Cleric")
        steps = plan_steps(cleric, 1, 2, "")
        self.assertNotIn(Step.SUBCLASS, steps)
        self.assertEqual(steps, [Step.HIT_POINTS, Step.FEATURE_REVIEW, Step.SPELL_SLOT_REVIEW, Step.CONFIRM])

    def test_class_without_subclasses_never_plans_subclass_step(self):
        commoner = _commoner()
        for old_level in range(1, 20):
            with self.subTest(level=old_level):
                self.assertNotIn(Step.SUBCLASS, plan_steps(commoner, old_level, old_level + 1, ""))

    def test_subclass_step_appears_exactly_once_across_levels(self):
        fighter = self.reference.find_class("Fighter")
        hits = [lvl for lvl in range(1, 20) if Step.SUBCLASS in plan_steps(fighter, lvl, lvl + 1, "")]
        self.assertEqual(hits, [2])

    def test_hit_points_first_and_confirm_last(self):
        for cls in self.reference.get_classes():
            for old_level in range(1, 10):
                steps = plan_steps(cls, old_level, old_level + 1, "")
                with self.subTest(cls=cls.name, level=old_level):
                    self.assertEqual(steps[0], Step.HIT_POINTS)
                    self.assertEqual(steps[-1], Step.CONFIRM)
                    self.assertEqual(len(steps), len(set(steps)))

    def test_missing_class_degenerates_to_confirm_only(self):
        self.assertEqual(plan_steps(None, 3, 4, ""), [Step.CONFIRM])

    def test_trigger_feature_only_hidden_at_subclass_level(self):
        fighter = self.reference.find_class("Fighter")
        self.assertEqual(first_subclass_level(fighter), 3)
        self.assertTrue(is_subclass_trigger_feature(fighter, ClassFeature(3, "Martial Archetype")))
        self.assertFalse(is_subclass_trigger_feature(fighter, ClassFeature(7, "Martial Archetype Feature")))
        names = [f.name for f in displayable_features_at_level(fighter, 7)]
        self.assertEqual(names, ["Martial Archetype Feature"])

    def test_displayable_features_skip_asi(self):
        fighter = self.reference.find_class("Fighter")
        self.assertEqual(displayable_features_at_level(fighter, 4), [])
        self.assertEqual([f.name for f in displayable_features_at_level(fighter, 5)], ["Extra Attack"])

    def test_trigger_without_subclasses_is_shown(self):
        commoner = _commoner()
        self.assertEqual([f.name for f in displayable_features_at_level(commoner, 2)], ["Martial Archetype"])

    def test_per_class_trigger_keywords_override_defaults(self):
        cls = ClassData(
            name="Seeker",
            features=[ClassFeature(3, "Sacred Calling"), ClassFeature(3, "Martial Archetype")],
            subclasses=[Subclass("Dawn", [ClassFeature(3, "Dawnlight")])],
            subclass_trigger_keywords=["calling"],
        )
        self.assertEqual([f.name for f in displayable_features_at_level(cls, 3)], ["Martial Archetype"])

    def test_first_subclass_level_uses_first_subclass(self):
        cls = ClassData(
            name="Odd",
            subclasses=[
                Subclass("Late", [ClassFeature(5, "Late Gift"), ClassFeature(3, "Early Gift")]),
                Subclass("Early", [ClassFeature(1, "Very Early")]),
            ],
        )
        self.assertEqual(first_subclass_level(cls), 3)

    def test_spell_slot_changes(self):
        caster = ClassData(
            name="Caster",
            spellcaster=True,
            spell_slots=[
                SpellSlotRow(1, {1: 2}),
                SpellSlotRow(2, {1: 2}),
                SpellSlotRow(3, {1: 2, 2: 1}),
            ],
        )
        self.assertFalse(spell_slots_changed(caster, 1, 2))
        self.assertTrue(spell_slots_changed(caster, 2, 3))
        self.assertTrue(spell_slots_changed(caster, 3, 4))
        self.assertFalse(spell_slots_changed(caster, 7, 8))
        self.assertNotIn(Step.SPELL_SLOT_REVIEW, plan_steps(caster, 1, 2, ""))

    def test_non_caster_never_reviews_slots(self):
        cls = ClassData(name="Half", spellcaster=False, spell_slots=[SpellSlotRow(1, {1: 2}), SpellSlotRow(2, {1: 3})])
        self.assertNotIn(Step.SPELL_SLOT_REVIEW, plan_steps(cls, 1, 2, ""))

    def test_parse_die_size(self):
        self.assertEqual(parse_die_size("1d10"), 10)
        self.assertEqual(parse_die_size("d12"), 12)
        self.assertEqual(parse_die_size(" 1D6 "), 6)
        self.assertEqual(parse_die_size("ten"), 8)
        self.assertEqual(parse_die_size("1dx"), 8)
        self.assertEqual(parse_die_size("d0"), 8)
        self.assertEqual(parse_die_size(None), 8)


if __name__ == "__main__":
    unittest.main()
