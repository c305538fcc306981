"""Character record shared by the level-up wizard, storage and LAN routes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

MAX_LEVEL = 20
ABILITY_CAP = 20

ABILITY_ORDER = [
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
]

ABILITY_NAMES = {
    "strength": "Strength",
    "dexterity": "Dexterity",
    "constitution": "Constitution",
    "intelligence": "Intelligence",
    "wisdom": "Wisdom",
    "charisma": "Charisma",
}

_ABILITY_ALIASES = {
    "str": "strength",
    "dex": "dexterity",
    "con": "constitution",
    "int": "intelligence",
    "wis": "wisdom",
    "cha": "charisma",
}


def normalize_ability(name: object) -> Optional[str]:
    key = str(name or "").strip().lower()
    key = _ABILITY_ALIASES.get(key, key)
    return key if key in ABILITY_NAMES else None


def ability_modifier(score: int) -> int:
    return (int(score or 0) - 10) // 2


def slugify_filename(name: str) -> str:
    text = (name or "").strip().lower()
    cleaned = []
    for ch in text:
        if ch.isalnum():
            cleaned.append(ch)
        elif ch in {" ", "'", "-"}:
            cleaned.append("_")
    out = "".join(cleaned)
    while "__" in out:
        out = out.replace("__", "_")
    return out.strip("_") or "character"


def _int(value: object, default: int = 0) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _now_text() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class HitPoints:
    maximum: int = 0
    current: int = 0
    temporary: int = 0


@dataclass
class HitDice:
    total: int = 1
    remaining: int = 1
    die_type: str = "d8"


@dataclass
class SlotTracker:
    total: int = 0
    remaining: int = 0


@dataclass
class Spellcasting:
    """Spellcasting sub-record; slot trackers are keyed by spell level 1-9."""

    ability: str
    slots: Dict[int, SlotTracker] = field(default_factory=lambda: {lvl: SlotTracker() for lvl in range(1, 10)})

    def set_slots(self, spell_level: int, total: int) -> None:
        if spell_level < 1 or spell_level > 9:
            return
        total = max(0, int(total))
        self.slots[spell_level] = SlotTracker(total=total, remaining=total)

    def slot_total(self, spell_level: int) -> int:
        tracker = self.slots.get(spell_level)
        return tracker.total if tracker else 0


@dataclass
class Feature:
    name: str
    source: str = ""
    description: str = ""
    level: int = 0


@dataclass
class Features:
    racial_traits: List[Feature] = field(default_factory=list)
    class_features: List[Feature] = field(default_factory=list)
    feats: List[Feature] = field(default_factory=list)

    def add_class_feature(self, name: str, source: str, description: str, level: int) -> None:
        self.class_features.append(Feature(name=name, source=source, description=description, level=level))

    def add_feat(self, name: str, description: str) -> None:
        self.feats.append(Feature(name=name, source="Feat", description=description))

    def all_features(self) -> List[Feature]:
        return list(self.racial_traits) + list(self.class_features) + list(self.feats)


@dataclass
class Character:
    name: str
    race: str = ""
    char_class: str = ""
    level: int = 1
    subclass: str = ""
    ability_scores: Dict[str, int] = field(default_factory=lambda: {ab: 10 for ab in ABILITY_ORDER})
    hit_points: HitPoints = field(default_factory=HitPoints)
    hit_dice: HitDice = field(default_factory=HitDice)
    armor_class: int = 10
    initiative: int = 0
    speed: int = 30
    spellcasting: Optional[Spellcasting] = None
    features: Features = field(default_factory=Features)
    created_at: str = field(default_factory=_now_text)
    updated_at: str = field(default_factory=_now_text)

    def ability_base(self, ability: str) -> int:
        return int(self.ability_scores.get(ability, 10))

    def set_ability_base(self, ability: str, value: int) -> None:
        self.ability_scores[ability] = int(value)

    def ability_mod(self, ability: str) -> int:
        return ability_modifier(self.ability_base(ability))

    def mark_updated(self) -> None:
        self.updated_at = _now_text()

    def level_up(self) -> bool:
        """Raise the level by one and keep the hit-dice total in step with it."""
        if self.level >= MAX_LEVEL:
            return False
        self.level += 1
        self.hit_dice.total = self.level
        self.mark_updated()
        return True

    # ---------- YAML layout ----------

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "race": self.race,
            "leveling": {
                "class": self.char_class,
                "level": self.level,
                "subclass": self.subclass,
            },
            "abilities": {ab: int(self.ability_scores.get(ab, 10)) for ab in ABILITY_ORDER},
            "vitals": {
                "max_hp": self.hit_points.maximum,
                "current_hp": self.hit_points.current,
                "temp_hp": self.hit_points.temporary,
                "hit_dice": {
                    "total": self.hit_dice.total,
                    "remaining": self.hit_dice.remaining,
                    "die": self.hit_dice.die_type,
                },
                "armor_class": self.armor_class,
                "initiative": self.initiative,
                "speed": self.speed,
            },
            "features": {
                "racial_traits": [_feature_to_dict(f) for f in self.features.racial_traits],
                "class_features": [_feature_to_dict(f) for f in self.features.class_features],
                "feats": [_feature_to_dict(f) for f in self.features.feats],
            },
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.spellcasting is not None:
            payload["spellcasting"] = {
                "ability": self.spellcasting.ability,
                "slots": {
                    lvl: {"total": tracker.total, "remaining": tracker.remaining}
                    for lvl, tracker in sorted(self.spellcasting.slots.items())
                },
            }
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Character":
        leveling = raw.get("leveling") if isinstance(raw.get("leveling"), dict) else {}
        vitals = raw.get("vitals") if isinstance(raw.get("vitals"), dict) else {}
        dice = vitals.get("hit_dice") if isinstance(vitals.get("hit_dice"), dict) else {}
        level = max(1, _int(leveling.get("level"), 1))

        abilities = {ab: 10 for ab in ABILITY_ORDER}
        raw_abilities = raw.get("abilities")
        if isinstance(raw_abilities, dict):
            for key, val in raw_abilities.items():
                ability = normalize_ability(key)
                if ability:
                    abilities[ability] = _int(val, 10)

        features = Features()
        raw_features = raw.get("features")
        if isinstance(raw_features, dict):
            features.racial_traits = _features_from_list(raw_features.get("racial_traits"))
            features.class_features = _features_from_list(raw_features.get("class_features"))
            features.feats = _features_from_list(raw_features.get("feats"))

        spellcasting = None
        raw_spells = raw.get("spellcasting")
        if isinstance(raw_spells, dict):
            spellcasting = Spellcasting(ability=normalize_ability(raw_spells.get("ability")) or "intelligence")
            slots = raw_spells.get("slots")
            if isinstance(slots, dict):
                for key, entry in slots.items():
                    lvl = _int(key)
                    if not 1 <= lvl <= 9 or not isinstance(entry, dict):
                        continue
                    total = max(0, _int(entry.get("total")))
                    remaining = max(0, min(total, _int(entry.get("remaining"), total)))
                    spellcasting.slots[lvl] = SlotTracker(total=total, remaining=remaining)

        char = cls(
            name=str(raw.get("name") or "").strip(),
            race=str(raw.get("race") or "").strip(),
            char_class=str(leveling.get("class") or "").strip(),
            level=level,
            subclass=str(leveling.get("subclass") or "").strip(),
            ability_scores=abilities,
            hit_points=HitPoints(
                maximum=_int(vitals.get("max_hp")),
                current=_int(vitals.get("current_hp")),
                temporary=_int(vitals.get("temp_hp")),
            ),
            hit_dice=HitDice(
                total=_int(dice.get("total"), level),
                remaining=_int(dice.get("remaining"), level),
                die_type=str(dice.get("die") or "d8"),
            ),
            armor_class=_int(vitals.get("armor_class"), 10),
            initiative=_int(vitals.get("initiative")),
            speed=_int(vitals.get("speed"), 30),
            spellcasting=spellcasting,
            features=features,
        )
        if raw.get("created_at"):
            char.created_at = str(raw.get("created_at"))
        if raw.get("updated_at"):
            char.updated_at = str(raw.get("updated_at"))
        return char


def _feature_to_dict(feature: Feature) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": feature.name, "source": feature.source, "description": feature.description}
    if feature.level:
        out["level"] = feature.level
    return out


def _features_from_list(value: object) -> List[Feature]:
    features: List[Feature] = []
    if not isinstance(value, list):
        return features
    for entry in value:
        if isinstance(entry, str) and entry.strip():
            features.append(Feature(name=entry.strip()))
            continue
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        if not name:
            continue
        features.append(
            Feature(
                name=name,
                source=str(entry.get("source") or ""),
                description=str(entry.get("description") or ""),
                level=_int(entry.get("level")),
            )
        )
    return features
