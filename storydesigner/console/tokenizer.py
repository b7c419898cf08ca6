"""Command-line tokenizer for the AI console.

    /community-post "this is a message"  →  ["community-post", "this is a message"]

One leading "/" is stripped and whitespace runs collapse to a single space
before matching. Tokens are, greedily left to right: a double-quoted run, a
single-quoted run (both allow backslash-escaped quotes inside, which are
kept as written), or a run of ASCII letters, digits, underscores and hyphens.
Anything else is dropped without complaint, so stray punctuation between
tokens disappears and "José" tokenizes as "Jos". An empty quoted run has no
content to take, so the quotes themselves are the token.
"""

from __future__ import annotations

import re

COMMAND_PREFIX = "/"

_TOKEN = re.compile(r'"([^"\\]*(?:\\.[^"\\]*)*)"|\'([^\'\\]*(?:\\.[^\'\\]*)*)\'|[\w-]+', re.ASCII)
_SPACES = re.compile(r"\s+")


def tokenize(line: str) -> list[str]:
    if line.startswith(COMMAND_PREFIX):
        line = line[len(COMMAND_PREFIX):]
    line = _SPACES.sub(" ", line).strip()
    if not line:
        return []
    return [match.group(1) or match.group(2) or match.group(0) for match in _TOKEN.finditer(line)]
