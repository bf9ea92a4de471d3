from enum import Enum
from typing import Iterable, List

# Identities of the automated regeneration accounts.
DEFAULT_AUTOMATED_AUTHOR_PATTERNS = [
    "vanemelensam",
    "program-sam",
    "samvanemelen",
]


class AuthorClass(Enum):
    AUTOMATED = "automated"
    HUMAN = "human"


class AuthorClassifier:
    """
    Labels commit authors as automated or human.

    An identity is automated when it contains any configured pattern as a
    case-insensitive substring; every other identity, including the empty
    string, is human.
    """

    def __init__(self, automated_patterns: Iterable[str] = DEFAULT_AUTOMATED_AUTHOR_PATTERNS):
        self.automated_patterns: List[str] = [p.lower() for p in automated_patterns if p]

    def classify(self, author_identity: str) -> AuthorClass:
        lowered = (author_identity or "").lower()
        if any(pattern in lowered for pattern in self.automated_patterns):
            return AuthorClass.AUTOMATED
        return AuthorClass.HUMAN

    def is_automated(self, author_identity: str) -> bool:
        return self.classify(author_identity) is AuthorClass.AUTOMATED

    def __call__(self, author_identity: str) -> AuthorClass:
        return self.classify(author_identity)
