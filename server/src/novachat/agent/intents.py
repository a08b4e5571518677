"""Classify an inbound message as a memory command or ordinary chat."""

import re
from dataclasses import dataclass

REMEMBER_PATTERN = re.compile(r"^remember\s+(.+)", re.IGNORECASE | re.DOTALL)
RECALL_PATTERN = re.compile(r"what do you remember|what do you recall|remember what", re.IGNORECASE)

NO_MEMORIES = "I don't have any saved memories for you."


@dataclass(frozen=True)
class Remember:
    text: str


@dataclass(frozen=True)
class Recall:
    pass


@dataclass(frozen=True)
class Chat:
    text: str


Intent = Remember | Recall | Chat


def classify(message: str) -> Intent:
    """A 'remember ...' prefix wins over recall phrases."""
    match = REMEMBER_PATTERN.match(message.strip())
    if match:
        return Remember(match.group(1).strip())
    if RECALL_PATTERN.search(message):
        return Recall()
    return Chat(message)


def confirm_remember(text: str) -> str:
    return f'Okay — I\'ll remember: "{text}"'


def format_memories(memories: list[str]) -> str:
    if not memories:
        return NO_MEMORIES
    return "I remember: " + "\n".join(f"({i}) {m}" for i, m in enumerate(memories, start=1))
