"""Class, subclass and feat reference data loaded from the YAML files under ./data."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from character_model import normalize_ability

logger = logging.getLogger(__name__)

SPELL_LEVEL_KEYS = ("1st", "2nd", "3rd", "4th", "5th", "6th", "7th", "8th", "9th")


class ReferenceDataError(Exception):
    """Raised when reference data cannot be read."""


class ClassNotFoundError(ReferenceDataError):
    def __init__(self, name: str) -> None:
        super().__init__(f"class not found: {name}")
        self.name = name


def _default_data_dir() -> Path:
    return Path(__file__).resolve().parent / "data"


def _int(value: object, default: int = 0) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ClassFeature:
    level: int
    name: str
    description: str = ""


@dataclass(frozen=True)
class Subclass:
    name: str
    features: List[ClassFeature] = field(default_factory=list)


@dataclass(frozen=True)
class SpellSlotRow:
    level: int
    counts: Dict[int, int] = field(default_factory=dict)

    def count(self, spell_level: int) -> int:
        return int(self.counts.get(spell_level, 0))


@dataclass(frozen=True)
class ClassData:
    name: str
    hit_dice: str = "1d8"
    spellcaster: bool = False
    spellcasting_ability: str = ""
    features: List[ClassFeature] = field(default_factory=list)
    subclasses: List[Subclass] = field(default_factory=list)
    spell_slots: List[SpellSlotRow] = field(default_factory=list)
    # None means the built-in keyword set applies.
    subclass_trigger_keywords: Optional[List[str]] = None

    def features_at_level(self, level: int) -> List[ClassFeature]:
        return [f for f in self.features if f.level == level]

    def has_feature_at_level(self, name: str, level: int) -> bool:
        return any(f.level == level and f.name == name for f in self.features)

    def spell_slot_row(self, level: int) -> Optional[SpellSlotRow]:
        for row in self.spell_slots:
            if row.level == level:
                return row
        return None


@dataclass(frozen=True)
class AbilityScoreIncrease:
    options: List[str] = field(default_factory=list)
    amount: int = 1


@dataclass(frozen=True)
class FeatEffects:
    ability_score_increase: Optional[AbilityScoreIncrease] = None
    initiative_bonus: int = 0
    speed_bonus: int = 0
    ac_bonus: int = 0
    hp_per_level: int = 0


@dataclass(frozen=True)
class Feat:
    name: str
    description: str = ""
    prerequisite: str = ""
    effects: FeatEffects = field(default_factory=FeatEffects)


def _features_from_raw(value: object) -> List[ClassFeature]:
    out: List[ClassFeature] = []
    if not isinstance(value, list):
        return out
    for entry in value:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        level = _int(entry.get("level"))
        if not name or level <= 0:
            continue
        out.append(ClassFeature(level=level, name=name, description=str(entry.get("description") or "").strip()))
    out.sort(key=lambda f: f.level)
    return out


def _slot_row_from_raw(entry: object) -> Optional[SpellSlotRow]:
    if not isinstance(entry, dict):
        return None
    level = _int(entry.get("level"))
    if level <= 0:
        return None
    counts: Dict[int, int] = {}
    for idx, key in enumerate(SPELL_LEVEL_KEYS, start=1):
        raw = entry.get(key, entry.get(idx))
        count = max(0, _int(raw))
        if count:
            counts[idx] = count
    return SpellSlotRow(level=level, counts=counts)


def class_from_raw(entry: Dict[str, Any]) -> Optional[ClassData]:
    name = str(entry.get("name") or "").strip()
    if not name:
        return None
    subclasses: List[Subclass] = []
    raw_subclasses = entry.get("subclasses")
    if isinstance(raw_subclasses, list):
        for sub in raw_subclasses:
            if not isinstance(sub, dict):
                continue
            sub_name = str(sub.get("name") or "").strip()
            if not sub_name:
                continue
            subclasses.append(Subclass(name=sub_name, features=_features_from_raw(sub.get("features"))))
    slots: List[SpellSlotRow] = []
    raw_slots = entry.get("spell_slots")
    if isinstance(raw_slots, list):
        for row in raw_slots:
            parsed = _slot_row_from_raw(row)
            if parsed is not None:
                slots.append(parsed)
    keywords = entry.get("subclass_trigger_keywords")
    if isinstance(keywords, list):
        keywords = [str(k).strip().lower() for k in keywords if str(k).strip()]
    else:
        keywords = None
    return ClassData(
        name=name,
        hit_dice=str(entry.get("hit_dice") or "1d8").strip(),
        spellcaster=bool(entry.get("spellcaster", False)),
        spellcasting_ability=normalize_ability(entry.get("spellcasting_ability")) or "",
        features=_features_from_raw(entry.get("features")),
        subclasses=subclasses,
        spell_slots=slots,
        subclass_trigger_keywords=keywords,
    )


def feat_from_raw(entry: Dict[str, Any]) -> Optional[Feat]:
    name = str(entry.get("name") or "").strip()
    if not name:
        return None
    effects_raw = entry.get("effects") if isinstance(entry.get("effects"), dict) else {}
    asi = None
    asi_raw = effects_raw.get("ability_score_increase")
    if isinstance(asi_raw, dict):
        options = []
        for opt in asi_raw.get("options") or []:
            ability = normalize_ability(opt)
            if ability and ability not in options:
                options.append(ability)
        if options:
            asi = AbilityScoreIncrease(options=options, amount=max(1, _int(asi_raw.get("amount"), 1)))
    effects = FeatEffects(
        ability_score_increase=asi,
        initiative_bonus=_int(effects_raw.get("initiative_bonus")),
        speed_bonus=_int(effects_raw.get("speed_bonus")),
        ac_bonus=_int(effects_raw.get("ac_bonus")),
        hp_per_level=_int(effects_raw.get("hp_per_level")),
    )
    return Feat(
        name=name,
        description=str(entry.get("description") or "").strip(),
        prerequisite=str(entry.get("prerequisite") or "").strip(),
        effects=effects,
    )


def _entries(data: object, key: str) -> List[object]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    return []


class ReferenceData:
    """Read-only lookup over classes.yaml and feats.yaml, cached after first read."""

    def __init__(self, data_dir: Optional[Path] = None) -> None:
        self._data_dir = Path(data_dir) if data_dir else _default_data_dir()
        self._classes: Optional[List[ClassData]] = None
        self._feats: Optional[List[Feat]] = None

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _read_yaml(self, filename: str) -> object:
        path = self._data_dir / filename
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ReferenceDataError(f"cannot read {path}: {exc}") from exc
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ReferenceDataError(f"invalid YAML in {path}: {exc}") from exc

    def get_classes(self) -> List[ClassData]:
        if self._classes is None:
            data = self._read_yaml("classes.yaml")
            classes: List[ClassData] = []
            for entry in _entries(data, "classes"):
                if not isinstance(entry, dict):
                    continue
                parsed = class_from_raw(entry)
                if parsed is not None:
                    classes.append(parsed)
            self._classes = classes
            logger.debug("Loaded %d classes from %s", len(classes), self._data_dir)
        return self._classes

    def find_class(self, name: str) -> ClassData:
        wanted = str(name or "").strip().lower()
        for cls in self.get_classes():
            if cls.name.lower() == wanted:
                return cls
        raise ClassNotFoundError(name)

    def get_feats(self) -> List[Feat]:
        if self._feats is None:
            data = self._read_yaml("feats.yaml")
            feats: List[Feat] = []
            for entry in _entries(data, "feats"):
                if not isinstance(entry, dict):
                    continue
                parsed = feat_from_raw(entry)
                if parsed is not None:
                    feats.append(parsed)
            self._feats = feats
            logger.debug("Loaded %d feats from %s", len(feats), self._data_dir)
        return self._feats

    def clear_cache(self) -> None:
        self._classes = None
        self._feats = None
