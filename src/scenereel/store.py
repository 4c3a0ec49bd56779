"""Scene persistence keyed by scene id."""

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Protocol

import yaml

from .models import Scene


class SceneStore(Protocol):
    """Whole-job scene storage."""

    def get_all(self) -> List[Scene]:
        ...

    def put(self, scene: Scene) -> None:
        ...

    def bulk_put(self, scenes: Iterable[Scene]) -> None:
        ...

    def delete(self, scene_id: str) -> None:
        ...

    def clear(self) -> None:
        ...


class MemorySceneStore:
    """In-process store; keeps insertion order."""

    def __init__(self) -> None:
        self._scenes: Dict[str, Scene] = {}
        self._lock = threading.Lock()

    def get_all(self) -> List[Scene]:
        with self._lock:
            return [scene.model_copy() for scene in self._scenes.values()]

    def put(self, scene: Scene) -> None:
        with self._lock:
            self._scenes[scene.id] = scene.model_copy()

    def bulk_put(self, scenes: Iterable[Scene]) -> None:
        with self._lock:
            for scene in scenes:
                self._scenes[scene.id] = scene.model_copy()

    def delete(self, scene_id: str) -> None:
        with self._lock:
            self._scenes.pop(scene_id, None)

    def clear(self) -> None:
        with self._lock:
            self._scenes.clear()


class YamlSceneStore:
    """Store backed by a single YAML file holding the scene list.

    A missing file reads as an empty store. Every write rewrites the file.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Scene]:
        if not self._path.exists():
            return {}
        with open(self._path, "r") as f:
            data = yaml.safe_load(f) or {}
        return {item["id"]: Scene(**item) for item in data.get("scenes", [])}

    def _save(self, scenes: Dict[str, Scene]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {"scenes": [scene.model_dump(mode="json") for scene in scenes.values()]}
        with open(self._path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def get_all(self) -> List[Scene]:
        with self._lock:
            return list(self._load().values())

    def put(self, scene: Scene) -> None:
        self.bulk_put([scene])

    def bulk_put(self, scenes: Iterable[Scene]) -> None:
        with self._lock:
            stored = self._load()
            for scene in scenes:
                stored[scene.id] = scene
            self._save(stored)

    def delete(self, scene_id: str) -> None:
        with self._lock:
            stored = self._load()
            if stored.pop(scene_id, None) is not None:
                self._save(stored)

    def clear(self) -> None:
        with self._lock:
            self._save({})
