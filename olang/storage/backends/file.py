"""File sink: JSON lines, YAML documents or plain text."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import yaml

from olang.exceptions import SinkError
from olang.storage.interface import Sink

JSON_SUFFIXES = (".json", ".jsonl")
YAML_SUFFIXES = (".yaml", ".yml")


def serialize(value: Any, suffix: str) -> str:
    """Render a value for a file with the given suffix."""
    suffix = suffix.lower()
    if suffix in JSON_SUFFIXES:
        return json.dumps(value, default=str, ensure_ascii=False) + "\n"
    if suffix in YAML_SUFFIXES:
        return yaml.safe_dump(
            value,
            explicit_start=True,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, ensure_ascii=False) + "\n"
    return f"{value}\n"


class FileSink(Sink):
    """Appends values to files; structured formats stay round-trippable."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir) if base_dir else None

    def _path_for(self, collection: str) -> Path:
        path = Path(collection)
        if self.base_dir and not path.is_absolute():
            path = self.base_dir / path
        return path

    async def write(
        self,
        collection: str,
        value: Any,
        workflow_name: Optional[str] = None,
    ) -> None:
        path = self._path_for(collection)
        try:
            text = serialize(value, path.suffix)
            await asyncio.get_event_loop().run_in_executor(None, self._append, path, text)
        except (OSError, yaml.YAMLError) as e:
            raise SinkError(f"Cannot write to {path}: {e}") from e

    @staticmethod
    def _append(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(text)
