"""
Security knowledge base.

Vector search over SWC weakness classifications, historical exploits and
audit findings, plus the query aggregation and exploit-similarity logic the
analysis pipeline builds on it. Recorded findings and reviewer verdicts feed
the patterns and false-positives collections.
"""

from .aggregator import AggregatedKnowledge, KnowledgeAggregator
from .gateway import KnowledgeGateway, VectorSearchProvider
from .feedback import FindingInput, FindingRecorder
from .ingest import KnowledgeIngestor, SwcEntry, load_swc_registry
from .models import (
    AUDIT_FINDINGS,
    COLLECTIONS,
    EXPLOITS,
    FALSE_POSITIVES,
    PATTERNS,
    SWC,
    KnowledgeMatch,
    KnowledgeRecord,
)
from .similarity import SimilarExploit, SimilarityMatcher

__all__ = [
    "AUDIT_FINDINGS",
    "COLLECTIONS",
    "EXPLOITS",
    "FALSE_POSITIVES",
    "PATTERNS",
    "SWC",
    "AggregatedKnowledge",
    "FindingInput",
    "FindingRecorder",
    "KnowledgeAggregator",
    "KnowledgeGateway",
    "KnowledgeIngestor",
    "KnowledgeMatch",
    "KnowledgeRecord",
    "SimilarExploit",
    "SimilarityMatcher",
    "SwcEntry",
    "VectorSearchProvider",
    "load_swc_registry",
]
