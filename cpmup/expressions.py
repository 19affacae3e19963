"""MSBuild ``$(Property)`` expansion."""

import re
from collections.abc import Mapping

VARIABLE_PATTERN = re.compile(r"\$\(([^)]+)\)")

# Bounds cyclic or very deep definitions; a chain deeper than this is left
# partially unresolved.
MAX_ITERATIONS = 10


def resolve(text: str | None, properties: Mapping[str, str] | None) -> str | None:
    """Substitute ``$(Name)`` references from a property table.

    Unknown names are left verbatim. Substituted values may contain further
    references, so passes repeat until nothing changes or MAX_ITERATIONS.
    """
    if not text or not properties or "$(" not in text:
        return text

    # MSBuild property names are case-insensitive
    table = {name.lower(): value for name, value in properties.items()}

    resolved = text
    for _ in range(MAX_ITERATIONS):
        changed = False

        def substitute(match: re.Match) -> str:
            nonlocal changed
            name = match.group(1).lower()
            if name in table:
                changed = True
                return table[name]
            return match.group(0)

        resolved = VARIABLE_PATTERN.sub(substitute, resolved)
        if not changed:
            break

    return resolved
