#!/usr/bin/env python3
"""
DnD Level Up — LAN server

Players open the LAN URL, pick their character and step through the level-up
wizard by sending one input event at a time.

Run:
  python3 level_up_server.py --host 0.0.0.0 --port 8788
"""

from __future__ import annotations

import argparse
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException

from character_storage import CharacterNotFoundError, CharacterStorage, CharacterStorageError
from level_up_wizard import Action, LevelUpWizard, WizardSignal
from reference_data import ReferenceData

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8788


def _ensure_logs_dir() -> Path:
    """Create ./logs in the current working directory (best effort)."""
    logs = Path.cwd() / "logs"
    try:
        logs.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    return logs


def _make_ops_logger() -> logging.Logger:
    """Return a logger that writes to terminal + ./logs/operations.log."""
    lg = logging.getLogger("levelup.ops")
    if getattr(lg, "_levelup_configured", False):
        return lg

    lg.setLevel(logging.INFO)
    fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(message)s", "%Y-%m-%d %H:%M:%S")

    try:
        fh = logging.FileHandler(_ensure_logs_dir() / "operations.log", encoding="utf-8")
        fh.setLevel(logging.INFO)
        fh.setFormatter(fmt)
        lg.addHandler(fh)
    except OSError:
        pass

    sh = logging.StreamHandler()
    sh.setLevel(logging.INFO)
    sh.setFormatter(fmt)
    lg.addHandler(sh)

    lg.propagate = False
    setattr(lg, "_levelup_configured", True)
    return lg


class LevelUpSessions:
    """One wizard per character name, shared between request threads."""

    def __init__(
        self,
        storage: CharacterStorage,
        reference: ReferenceData,
        logger: Optional[logging.Logger] = None,
        rng: Optional[Any] = None,
    ) -> None:
        self._storage = storage
        self._reference = reference
        self._logger = logger or logging.getLogger(__name__)
        self._rng = rng
        self._lock = threading.Lock()
        self._wizards: Dict[str, LevelUpWizard] = {}

    @staticmethod
    def _key(name: str) -> str:
        return str(name or "").strip().lower()

    def start(self, name: str) -> LevelUpWizard:
        character = self._storage.load(name)
        wizard = LevelUpWizard(character, self._reference, storage=self._storage, rng=self._rng)
        with self._lock:
            self._wizards[self._key(name)] = wizard
        self._logger.info("Level up started for %s (%d -> %d)", character.name, wizard.old_level, wizard.new_level)
        return wizard

    def state(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            wizard = self._wizards.get(self._key(name))
            return wizard.snapshot() if wizard is not None else None

    def send(self, name: str, action: Action, text: str = "", width: int = 0, height: int = 0) -> Dict[str, Any]:
        with self._lock:
            wizard = self._wizards.get(self._key(name))
            if wizard is None:
                raise KeyError(name)
            signal = wizard.handle(action, text=text, width=width, height=height)
            if signal is not WizardSignal.NONE:
                self._wizards.pop(self._key(name), None)
            payload = wizard.snapshot()
        if signal is WizardSignal.COMPLETED:
            if wizard.save_error:
                self._logger.warning("Level up for %s applied but not saved: %s", wizard.character.name, wizard.save_error)
            else:
                self._logger.info("Level up complete: %s is now level %d", wizard.character.name, wizard.character.level)
        elif signal is WizardSignal.ABANDONED:
            self._logger.info("Level up abandoned for %s", wizard.character.name)
        payload["signal"] = signal.value
        return payload


def create_app(
    storage: CharacterStorage,
    reference: Optional[ReferenceData] = None,
    logger: Optional[logging.Logger] = None,
    rng: Optional[Any] = None,
) -> FastAPI:
    sessions = LevelUpSessions(storage, reference or ReferenceData(), logger=logger, rng=rng)
    app = FastAPI(title="DnD Level Up")
    app.state.sessions = sessions

    @app.get("/api/characters")
    def list_characters():
        return {"characters": storage.list()}

    @app.post("/api/level_up/{name}")
    def start_level_up(name: str):
        try:
            wizard = sessions.start(name)
        except CharacterNotFoundError:
            raise HTTPException(status_code=404, detail=f"No character named {name}.")
        except CharacterStorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        return wizard.snapshot()

    @app.get("/api/level_up/{name}")
    def level_up_state(name: str):
        state = sessions.state(name)
        if state is None:
            raise HTTPException(status_code=404, detail=f"No level up in progress for {name}.")
        return state

    @app.post("/api/level_up/{name}/event")
    def level_up_event(name: str, payload: Dict[str, Any]):
        try:
            action = Action(str(payload.get("action") or "").strip().lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown action: {payload.get('action')!r}")
        try:
            width = int(payload.get("width") or 0)
            height = int(payload.get("height") or 0)
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="width/height must be integers")
        try:
            return sessions.send(name, action, text=str(payload.get("text") or ""), width=width, height=height)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"No level up in progress for {name}.")

    return app


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Serve the D&D level-up wizard on the LAN.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--data-dir", type=Path, default=None, help="Folder holding character YAML files.")
    args = parser.parse_args(argv)

    import uvicorn

    ops = _make_ops_logger()
    storage = CharacterStorage(args.data_dir)
    app = create_app(storage, ReferenceData(), logger=ops)
    ops.info("Level-up server listening on http://%s:%d (characters in %s)", args.host, args.port, storage.base_dir)
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning", access_log=False)


if __name__ == "__main__":
    main()
