import json
from enum import Enum
from typing import Any

import yaml

from symbiote.core.ports.render import Renderer


class JsonRenderer(Renderer):
    def render(self, data: dict[str, Any]) -> str:
        return json.dumps(data, indent=2, sort_keys=False, ensure_ascii=False)


class YamlRenderer(Renderer):
    """
    Human-oriented rendition of a report. safe_dump only knows plain
    containers, so enums, tuples and raw payload bytes are normalized first.
    """

    def render(self, data: dict[str, Any]) -> str:
        normalized = self._normalize(data)
        return yaml.safe_dump(normalized, sort_keys=False, allow_unicode=True)

    def _normalize(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value

        if isinstance(obj, bytes):
            return obj.hex()

        if isinstance(obj, dict):
            return {self._normalize(k): self._normalize(v) for k, v in obj.items()}

        if isinstance(obj, (list, tuple, set, frozenset)):
            return [self._normalize(x) for x in obj]

        return obj


def get_renderer(fmt: str) -> Renderer:
    match fmt:
        case "json":
            return JsonRenderer()
        case "yaml":
            return YamlRenderer()
    raise ValueError(f"Unknown output format: {fmt!r}")
