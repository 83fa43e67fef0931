"""
Translation Progress Data Class

Contains the TranslationProgress dataclass for tracking one orchestration call.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass
class TranslationProgress:
    """Progress information for one translate-document call."""
    total: int = 0                   # Segments extracted from the document
    translated: int = 0              # Segments resolved (cache hits + backend output)
    remaining: int = 0               # Segments still unresolved
    remaining_chunks: int = 0        # Batches the unresolved segments form
    # Per-call counters
    cache_hits: int = 0              # Segments resolved from the cache
    cache_writes: int = 0            # Entries written to the cache this call
    current_chunk: int = 0           # Chunks processed so far this call (1-indexed after the first)
    planned_chunks: int = 0          # Chunks this call intends to process
    phase: str = "computing"         # computing|cache-resolving|chunk-processing|done|partial
    cache_enabled: bool = True       # False once a cache failure degraded this call

    @property
    def done(self) -> bool:
        return self.remaining == 0

    def progress_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "translated": self.translated,
            "remaining": self.remaining,
            "remaining_chunks": self.remaining_chunks,
        }

    @staticmethod
    def envelope_progress(progress: Dict[str, int]) -> Dict[str, int]:
        """progress_dict() renamed to the counter names the CMS admin panel reads."""
        return {
            "totalSegments": progress["total"],
            "translatedSegments": progress["translated"],
            "remainingSegments": progress["remaining"],
            "remainingChunks": progress["remaining_chunks"],
        }

    def cache_dict(self) -> Dict[str, int]:
        return {
            "hits": self.cache_hits,
            "writes": self.cache_writes,
        }
