"""
Reported findings and reviewer feedback.

A recorded finding is stored in the audit trail and mirrored into the
patterns collection so later queries can surface it. When a reviewer marks
a finding as a false positive, its stored document is copied into the
false-positives collection.
"""

import sys
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from analysis.errors import KnowledgeUnavailable

from .gateway import KnowledgeGateway
from .models import FALSE_POSITIVES, PATTERNS, KnowledgeRecord


class FindingInput(BaseModel):
    """A security finding reported by a tool or an auditor."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    vulnerability_type: str = Field(alias="vulnerabilityType")
    severity: Literal["critical", "high", "medium", "low", "info"]
    description: str | None = None
    contract: str | None = None
    function: str | None = None
    code_snippet: str | None = Field(default=None, alias="codeSnippet")
    line_number: int | None = Field(default=None, alias="lineNumber")
    tool: str | None = None  # slither, mythril, manual
    pattern: str | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)

    def to_record(self, finding_id: str) -> KnowledgeRecord:
        document = f"{self.title}\n{self.description or ''}\n{self.code_snippet or ''}"
        metadata = {
            "severity": self.severity,
            "type": self.vulnerability_type,
            "tool": self.tool,
            "pattern": self.pattern,
            "source": "self",
        }
        return KnowledgeRecord(
            id=finding_id,
            document=document,
            metadata={k: v for k, v in metadata.items() if v is not None},
        )


class FindingRecorder:
    """Records findings and reviewer verdicts.

    The audit trail is the source of truth. The gateway is optional; when it
    is missing or unreachable only the vector copies are skipped.
    """

    def __init__(self, audit_trail, gateway: KnowledgeGateway | None = None):
        self.audit_trail = audit_trail
        self.gateway = gateway

    async def record(self, finding: FindingInput) -> str:
        finding_id = self.audit_trail.record_finding(**finding.model_dump())
        if self.gateway is not None:
            try:
                await self.gateway.add(PATTERNS, [finding.to_record(finding_id)])
            except KnowledgeUnavailable as e:
                print(f"[!] Finding {finding_id} saved, but not added to the knowledge base: {e}", file=sys.stderr)
        return finding_id

    async def validate(self, finding_id: str, was_valid: bool, notes: str | None = None) -> dict[str, Any]:
        """Store a verdict on a recorded finding.

        Raises:
            ValueError: no finding with this id
        """
        if not self.audit_trail.update_finding_validation(finding_id, was_valid, notes):
            raise ValueError(f"Unknown finding: {finding_id}")

        copied = False
        if not was_valid and self.gateway is not None:
            copied = await self._copy_false_positive(finding_id, notes)

        return {"findingId": finding_id, "wasValid": was_valid, "notes": notes, "falsePositiveStored": copied}

    async def _copy_false_positive(self, finding_id: str, notes: str | None) -> bool:
        try:
            stored = await self.gateway.get_by_ids(PATTERNS, [finding_id])
            if not stored:
                return False
            metadata = stored[0].metadata.to_dict()
            if notes:
                metadata["notes"] = notes
            await self.gateway.add(
                FALSE_POSITIVES,
                [KnowledgeRecord(id=finding_id, document=stored[0].document, metadata=metadata)],
            )
            return True
        except KnowledgeUnavailable as e:
            print(f"[!] Could not store false positive {finding_id}: {e}", file=sys.stderr)
            return False
