"""In-memory tree of retained topics, used to inspect what the bridge published."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

SEPARATOR = "/"


@dataclass
class TopicTree:
    value: bytes | None = None
    children: dict[str, TopicTree] = field(default_factory=dict)

    def insert(self, topic: str, payload: bytes) -> None:
        node = self
        for part in topic.split(SEPARATOR):
            node = node.children.setdefault(part, TopicTree())
        # empty retained payload clears the topic
        node.value = payload if payload else None

    def get(self, topic: str) -> bytes | None:
        node = self
        for part in topic.split(SEPARATOR):
            child = node.children.get(part)
            if child is None:
                return None
            node = child
        return node.value

    def items(self, prefix: str = "") -> Iterator[tuple[str, bytes]]:
        for part in sorted(self.children):
            child = self.children[part]
            topic = f"{prefix}{SEPARATOR}{part}" if prefix else part
            if child.value is not None:
                yield topic, child.value
            yield from child.items(topic)

    def render(self, depth: int = 0) -> list[str]:
        lines: list[str] = []
        indent = "  " * depth
        for part in sorted(self.children):
            child = self.children[part]
            if child.value is not None:
                lines.append(f"{indent}{part} = {child.value.decode('utf-8', errors='replace')}")
            else:
                lines.append(f"{indent}{part}")
            lines.extend(child.render(depth + 1))
        return lines
