"""
Knowledge-base record shapes.

Each collection stores its own metadata shape. Matches are parsed into the
model for their collection so callers read typed fields instead of raw dicts.
Unknown keys are kept.
"""

import sys
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Collection names
SWC = "swc_registry"
EXPLOITS = "exploits"
AUDIT_FINDINGS = "audit_findings"
PATTERNS = "patterns"
FALSE_POSITIVES = "false_positives"

COLLECTIONS = (EXPLOITS, AUDIT_FINDINGS, PATTERNS, SWC, FALSE_POSITIVES)


class KnowledgeMetadata(BaseModel):
    """Metadata common to every collection."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SwcMetadata(KnowledgeMetadata):
    swc_id: str | None = None
    title: str | None = None
    severity: str | None = None  # critical, high, medium, low


class ExploitMetadata(KnowledgeMetadata):
    name: str | None = None
    protocol: str | None = None
    date: str | None = None
    loss: str | None = None
    category: str | None = None  # reentrancy, flash-loan, oracle-manipulation, ...
    attack_vector: str | None = Field(default=None, alias="attackVector")
    has_poc_code: bool | None = Field(default=None, alias="hasPocCode")


class AuditFindingMetadata(KnowledgeMetadata):
    title: str | None = None
    severity: str | None = None
    category: str | None = None
    protocol: str | None = None
    auditor: str | None = None


METADATA_MODELS: dict[str, type[KnowledgeMetadata]] = {
    SWC: SwcMetadata,
    EXPLOITS: ExploitMetadata,
    AUDIT_FINDINGS: AuditFindingMetadata,
}


def parse_metadata(collection: str, raw: dict[str, Any] | None) -> KnowledgeMetadata:
    """Parse a raw metadata map into its collection's model.

    Values the model can't accept fall back to the untyped base model so a
    single malformed record never breaks a query.
    """
    model = METADATA_MODELS.get(collection, KnowledgeMetadata)
    try:
        return model.model_validate(raw or {})
    except ValidationError as e:
        print(f"[!] Malformed {collection} metadata, keeping raw keys: {e.error_count()} errors", file=sys.stderr)
        return KnowledgeMetadata.model_construct(**(raw or {}))


@dataclass(frozen=True)
class KnowledgeMatch:
    """One nearest-neighbour hit. Lower distance means more similar."""

    id: str
    document: str
    metadata: KnowledgeMetadata
    distance: float
    collection: str = ""

    @property
    def relevance(self) -> int:
        """Similarity percentage."""
        return round((1 - self.distance) * 100)

    def format(self, excerpt_length: int = 300) -> dict[str, Any]:
        """Display shape used in reports."""
        excerpt = self.document[:excerpt_length]
        if len(self.document) > excerpt_length:
            excerpt += "..."
        return {
            "id": self.id,
            "relevance": f"{self.relevance}%",
            "metadata": self.metadata.to_dict(),
            "excerpt": excerpt,
        }


@dataclass
class KnowledgeRecord:
    """A document to add to a collection."""

    id: str
    document: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class KnowledgeSearch:
    """Results of one query fanned out to the SWC, exploit and audit-finding collections."""

    swc: list[KnowledgeMatch] = field(default_factory=list)
    exploits: list[KnowledgeMatch] = field(default_factory=list)
    audit_findings: list[KnowledgeMatch] = field(default_factory=list)

    def by_collection(self) -> dict[str, list[KnowledgeMatch]]:
        return {SWC: self.swc, EXPLOITS: self.exploits, AUDIT_FINDINGS: self.audit_findings}
