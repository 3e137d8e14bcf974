"""Text builders shared by the chunking tests."""
from __future__ import annotations

import random
from typing import List

VOCABULARY = [
    "agreement", "party", "notice", "term", "clause", "payment", "delivery", "service",
    "period", "liability", "consent", "schedule", "record", "invoice", "review", "owner",
]


def make_paragraph(rng: random.Random, index: int) -> str:
    words = [rng.choice(VOCABULARY) for _ in range(rng.randint(22, 36))]
    return f"Paragraph {index} " + " ".join(words) + "."


def make_document(paragraphs: int = 12, seed: int = 7) -> str:
    rng = random.Random(seed)
    return "\n\n".join(make_paragraph(rng, index) for index in range(paragraphs))


def make_sentences(count: int) -> List[str]:
    return [f"Sentence {index:03d} describes the document in a few plain words." for index in range(count)]


def make_clauses(paragraphs: int, per_paragraph: int = 3) -> List[str]:
    blocks = []
    for paragraph in range(paragraphs):
        sentences = [
            f"Clause {paragraph}{sentence} sets out the duties of each party here."
            for sentence in range(per_paragraph)
        ]
        blocks.append(" ".join(sentences))
    return blocks
