from __future__ import annotations

from typing import List, Optional, Tuple


def parse_command(text: str) -> Optional[Tuple[str, List[str]]]:
    """
    Split a Telegram command message into its name and arguments.

    Format: /{name}[@{bot_username}] [arg ...]

    Returns None when the text is not a command.
    """

    parts = text.split()
    if not parts or not parts[0].startswith("/"):
        return None

    name = parts[0][1:].split("@", 1)[0].lower()
    if not name:
        return None
    return name, parts[1:]
