"""
Risk pattern scan over verified contract source.
"""
import re
from typing import Dict, List, Optional


class PatternScanner:
    """Compiled, read-only view of the static {label, pattern} list."""

    def __init__(self, patterns: List[Dict[str, str]]):
        self._compiled = [
            (entry['label'], re.compile(entry['pattern'], re.IGNORECASE))
            for entry in patterns
        ]

    def __len__(self):
        return len(self._compiled)

    def scan(self, source: Optional[str]) -> List[str]:
        """Labels whose pattern occurs in the source, in list order."""
        if not source:
            return []

        found = []
        for label, regex in self._compiled:
            if label not in found and regex.search(source):
                found.append(label)
        return found
