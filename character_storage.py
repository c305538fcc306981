"""YAML character files under <data dir>/players."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import yaml

from character_model import Character, slugify_filename

logger = logging.getLogger(__name__)

USER_YAML_DIRNAME = "Dnd-LevelUp-Yamls"


class CharacterStorageError(Exception):
    """Raised when a character file cannot be written or read."""


class CharacterNotFoundError(CharacterStorageError):
    def __init__(self, name: str) -> None:
        super().__init__(f"character not found: {name}")
        self.name = name


def _app_base_dir() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    return Path(__file__).resolve().parent


def _app_data_dir() -> Path:
    override = os.getenv("LEVELUP_DATA_DIR")
    if override:
        return Path(override).expanduser()
    try:
        return Path.home() / "Documents" / USER_YAML_DIRNAME
    except RuntimeError:
        return _app_base_dir()


def default_players_dir() -> Path:
    return _app_data_dir() / "players"


class CharacterStorage:
    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else default_players_dir()
        # Files loaded under a name other than their slug keep being written in place.
        self._paths: Dict[str, Path] = {}
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CharacterStorageError(f"cannot create {self._base_dir}: {exc}") from exc

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @staticmethod
    def _key(name: str) -> str:
        return str(name or "").strip().lower()

    def path_for(self, name: str) -> Path:
        known = self._paths.get(self._key(name))
        if known is not None:
            return known
        return self._base_dir / f"{slugify_filename(name)}.yaml"

    def save(self, character: Character) -> Path:
        """Write the character atomically (temp file in the same folder, then replace)."""
        if character is None:
            raise CharacterStorageError("character cannot be None")
        if not (character.name or "").strip():
            raise CharacterStorageError("invalid character name")
        path = self.path_for(character.name)
        text = yaml.safe_dump(character.to_dict(), sort_keys=False, allow_unicode=True)
        tmp_path: Optional[str] = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=path.name + ".tmp.", dir=str(path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise CharacterStorageError(f"failed to save {character.name}: {exc}") from exc
        logger.debug("Saved %s to %s", character.name, path)
        return path

    def auto_save(self, character: Character) -> Path:
        character.mark_updated()
        return self.save(character)

    def load(self, name: str) -> Character:
        if not (name or "").strip():
            raise CharacterStorageError("invalid character name")
        path = self.path_for(name)
        if not path.exists():
            path = self._find_by_name(name) or path
        if not path.exists():
            raise CharacterNotFoundError(name)
        return self.load_path(path)

    def load_path(self, path: Path) -> Character:
        if not path.exists():
            raise CharacterNotFoundError(path.stem)
        data = self._read(path)
        if not isinstance(data, dict):
            raise CharacterStorageError(f"{path.name} does not hold a character")
        character = Character.from_dict(data)
        if character.name:
            self._paths[self._key(character.name)] = path
        return character

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists() or self._find_by_name(name) is not None

    def list(self) -> List[str]:
        names = [name for _, name in self._scan()]
        return sorted(names, key=str.lower)

    # ---------- helpers ----------

    @staticmethod
    def _read(path: Path) -> object:
        try:
            return yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise CharacterStorageError(f"failed to read {path.name}: {exc}") from exc

    def _scan(self) -> Iterator[Tuple[Path, str]]:
        for path in sorted(self._base_dir.glob("*.y*ml")):
            try:
                data = self._read(path)
            except CharacterStorageError:
                logger.warning("Skipping unreadable character file %s", path.name)
                continue
            if isinstance(data, dict) and str(data.get("name") or "").strip():
                yield path, str(data["name"]).strip()

    def _find_by_name(self, name: str) -> Optional[Path]:
        wanted = self._key(name)
        for path, found in self._scan():
            if self._key(found) == wanted:
                return path
        return None
