"""
ConfigManager: game balance read from YAML.

Every `*.yaml` / `*.yml` file under `config/` (searched recursively, in path
order) is deep-merged into one tree, so `config/gangs/combat.yaml` with a
top-level `gangs:` key and `config/gangs/base.yaml` with the same key end up
side by side. Reads use dotted paths:

    ConfigManager.get("gangs.raid.base_rate", 50)

Callers always pass a fallback, so a missing or broken file degrades to the
built-in numbers instead of failing a command. `override` patches the live
tree for tests and hot balance changes; `reset` forgets everything and the
next read reloads from disk.
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml

from turfwar.core.config.config import Config
from turfwar.core.logging.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


class ConfigManagerError(RuntimeError):
    pass


def merge_into(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge `source` into `target`; mappings merge, anything else replaces."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            merge_into(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _yaml_files(root: Path) -> Iterator[Path]:
    yield from sorted(p for p in root.rglob("*") if p.suffix in (".yaml", ".yml") and p.is_file())


class ConfigManager:
    _tree: Dict[str, Any] = {}
    _loaded: bool = False
    _root: Optional[Path] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    def _load(cls) -> None:
        root = cls._root or Config.CONFIG_DIR
        tree: Dict[str, Any] = {}
        files = 0

        if not root.is_dir():
            logger.warning("No balance config directory, using inline defaults", extra={"config_dir": str(root)})
        else:
            for path in _yaml_files(root):
                try:
                    data = yaml.safe_load(path.read_text(encoding="utf-8"))
                except (OSError, yaml.YAMLError) as exc:
                    logger.warning(
                        "Skipping unreadable balance file",
                        extra={"file": str(path), "error_type": type(exc).__name__, "error": str(exc)},
                    )
                    continue
                if data is None:
                    continue
                if not isinstance(data, dict):
                    logger.warning("Skipping balance file without a mapping root", extra={"file": str(path)})
                    continue
                merge_into(tree, data)
                files += 1

        cls._tree = tree
        cls._loaded = True
        logger.info("Balance config loaded", extra={"files": files, "sections": sorted(tree)})

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """Load the YAML tree once. `config_dir` replaces Config.CONFIG_DIR."""
        async with cls._init_lock:
            if cls._loaded:
                return
            if config_dir is not None:
                cls._root = config_dir
            cls._load()

    @classmethod
    def reset(cls) -> None:
        cls._tree = {}
        cls._loaded = False
        cls._root = None

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        if not cls._loaded:
            cls._load()

        node: Any = cls._tree
        for part in key.split("."):
            node = node.get(part, _MISSING) if isinstance(node, dict) else _MISSING
            if node is _MISSING:
                return default
        return default if node is None else node

    @classmethod
    def override(cls, key: str, value: Any) -> None:
        """
        Replace one value in the live tree. YAML files are not touched.

        Raises:
            ConfigManagerError: A parent segment holds a non-mapping value.
        """
        if not cls._loaded:
            cls._load()

        *parents, leaf = key.split(".")
        node = cls._tree
        for part in parents:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise ConfigManagerError(f"cannot override {key!r}: {part!r} is not a mapping")
        node[leaf] = value
        logger.info("Balance override", extra={"config_key": key})
