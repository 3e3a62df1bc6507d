"""
Output Shaper
=============

Derives the caller-facing artifacts from the cleaned post list.
"""

import random
from typing import List, Optional, Sequence, Tuple


TRUNCATION_MARKER = "..."


class OutputShaper:
    """Builds few-shot samples and the merged style-analysis corpus."""

    def __init__(
        self,
        sample_cap: int = 1500,
        corpus_cap: int = 4000,
        separator: str = "\n\n---\n\n",
        rng: Optional[random.Random] = None,
    ):
        self.sample_cap = sample_cap
        self.corpus_cap = corpus_cap
        self.separator = separator
        self.rng = rng or random.Random()

    def build_samples(self, posts: Sequence[str]) -> List[str]:
        """Posts capped at ``sample_cap`` with a marker, in shuffled order."""
        samples = [
            post[: self.sample_cap] + TRUNCATION_MARKER if len(post) > self.sample_cap else post
            for post in posts
        ]
        self.rng.shuffle(samples)
        return samples

    def build_merged_text(self, posts: Sequence[str]) -> str:
        """Posts capped at ``corpus_cap`` without a marker, in discovery order."""
        return self.separator.join(post[: self.corpus_cap] for post in posts)

    def shape(self, posts: Sequence[str]) -> Tuple[List[str], str]:
        """Return ``(samples, merged_text)``; ``posts`` is not modified."""
        return self.build_samples(posts), self.build_merged_text(posts)
