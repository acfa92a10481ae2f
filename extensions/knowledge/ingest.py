"""
Knowledge-base ingestion.

Loads the built-in SWC registry (YAML shipped with the package), optionally
refreshes titles and descriptions from the upstream registry, and validates
exploit and audit-finding records before they are added to their collections.
"""

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiohttp
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .gateway import KnowledgeGateway
from .models import AUDIT_FINDINGS, EXPLOITS, SWC, KnowledgeRecord

SWC_REGISTRY_PATH = Path(__file__).parent / "data" / "swc_registry.yaml"
SWC_DEFINITION_URL = (
    "https://raw.githubusercontent.com/SmartContractSecurity/SWC-registry/master/export/swc-definition.json"
)
POC_EXCERPT = 2000


@dataclass
class SwcEntry:
    """A Smart Contract Weakness Classification entry."""
    id: str
    title: str
    description: str
    severity: str = "unknown"
    remediation: str = ""

    def to_record(self) -> KnowledgeRecord:
        return KnowledgeRecord(
            id=self.id,
            document=f"{self.title}\n{self.description}\n{self.remediation}",
            metadata={
                "swc_id": self.id,
                "title": self.title,
                "severity": self.severity or "unknown",
                "source": "swc_registry",
            },
        )


class ExploitRecord(BaseModel):
    """A historical exploit as accepted by `kb ingest`."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    name: str
    protocol: str
    date: str
    category: str
    description: str
    source: str
    loss: str | None = None
    attack_vector: str | None = Field(default=None, alias="attackVector")
    poc_code: str | None = Field(default=None, alias="pocCode")

    def to_record(self) -> KnowledgeRecord:
        parts = [self.name, self.description, self.attack_vector or "", self.protocol, self.category]
        if self.poc_code:
            parts.append(self.poc_code[:POC_EXCERPT])

        metadata: dict[str, Any] = {
            "name": self.name,
            "protocol": self.protocol,
            "date": self.date,
            "loss": self.loss,
            "category": self.category,
            "source": self.source,
            "attackVector": self.attack_vector,
        }
        if self.poc_code:
            metadata["hasPocCode"] = True
        return KnowledgeRecord(id=self.id, document="\n".join(parts), metadata=metadata)


class AuditFindingRecord(BaseModel):
    """An audit-report finding as accepted by `kb ingest`."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    title: str
    severity: str
    category: str
    protocol: str
    auditor: str
    description: str
    recommendation: str | None = None

    def to_record(self) -> KnowledgeRecord:
        return KnowledgeRecord(
            id=self.id,
            document=f"{self.title}\n{self.description}\n{self.recommendation or ''}",
            metadata={
                "title": self.title,
                "severity": self.severity,
                "category": self.category,
                "protocol": self.protocol,
                "auditor": self.auditor,
                "source": "audit",
            },
        )


RECORD_MODELS: dict[str, type[BaseModel]] = {
    EXPLOITS: ExploitRecord,
    AUDIT_FINDINGS: AuditFindingRecord,
}


def load_swc_registry(path: Path | None = None) -> list[SwcEntry]:
    """Load the curated SWC registry from YAML."""
    path = path or SWC_REGISTRY_PATH
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return [
        SwcEntry(
            id=entry["id"],
            title=entry.get("title", ""),
            description=entry.get("description", ""),
            severity=entry.get("severity", "unknown"),
            remediation=entry.get("remediation", ""),
        )
        for entry in data.get("entries", [])
    ]


def parse_swc_definitions(data: dict[str, Any], builtin: list[SwcEntry]) -> list[SwcEntry]:
    """Merge upstream SWC definitions with the built-in entries.

    Upstream carries titles, descriptions and remediations but no severity,
    so severities come from the built-in registry. Built-in entries missing
    upstream are kept.
    """
    known = {e.id: e for e in builtin}
    merged: dict[str, SwcEntry] = dict(known)

    for swc_id, definition in data.items():
        content = (definition or {}).get("content") or {}
        title = content.get("Title") or (known[swc_id].title if swc_id in known else "")
        if not title:
            continue
        merged[swc_id] = SwcEntry(
            id=swc_id,
            title=title.strip(),
            description=(content.get("Description") or "").strip()
            or (known[swc_id].description if swc_id in known else ""),
            severity=known[swc_id].severity if swc_id in known else "unknown",
            remediation=(content.get("Remediation") or "").strip()
            or (known[swc_id].remediation if swc_id in known else ""),
        )

    return [merged[k] for k in sorted(merged)]


async def fetch_latest_swc(
    builtin: list[SwcEntry],
    url: str = SWC_DEFINITION_URL,
    timeout: int = 30,
) -> list[SwcEntry] | None:
    """Download the upstream SWC definitions. Returns None on any failure."""
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                response.raise_for_status()
                data = json.loads(await response.text())
    except aiohttp.ClientResponseError as e:
        print(f"[!] SWC registry fetch failed: {e.status} {e.message}", file=sys.stderr)
        return None
    except (aiohttp.ClientError, TimeoutError, json.JSONDecodeError) as e:
        print(f"[!] SWC registry fetch error: {e}", file=sys.stderr)
        return None

    if not isinstance(data, dict):
        print("[!] Unexpected SWC registry format, using built-in entries", file=sys.stderr)
        return None
    return parse_swc_definitions(data, builtin)


def load_records_file(path: Path) -> list[dict[str, Any]]:
    """Read a JSON or YAML file holding a list of records (or {"records": [...]})."""
    with open(path) as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of records")
    return data


def validate_records(collection: str, raw: list[dict[str, Any]]) -> tuple[list[KnowledgeRecord], list[str]]:
    """Validate raw dicts for a collection.

    Returns:
        Tuple of (records, errors); invalid entries are reported, not raised
    """
    model = RECORD_MODELS.get(collection)
    if model is None:
        raise ValueError(f"Cannot ingest records into {collection}")

    records, errors = [], []
    for i, item in enumerate(raw):
        try:
            records.append(model.model_validate(item).to_record())
        except ValidationError as e:
            errors.append(f"record {i}: {e.error_count()} validation errors")
    return records, errors


class KnowledgeIngestor:
    """Adds curated and user-supplied records to the knowledge base."""

    def __init__(self, gateway: KnowledgeGateway):
        self.gateway = gateway

    async def ingest_swc(self, fetch_latest: bool = False, registry_path: Path | None = None) -> list[SwcEntry]:
        """Ingest the SWC registry. Falls back to the built-in entries when the fetch fails."""
        entries = load_swc_registry(registry_path)
        if fetch_latest:
            latest = await fetch_latest_swc(entries)
            if latest:
                entries = latest
            else:
                print("[!] Using built-in SWC registry", file=sys.stderr)

        await self.gateway.add(SWC, [e.to_record() for e in entries])
        return entries

    async def ingest_exploits(self, raw: list[dict[str, Any]]) -> tuple[int, list[str]]:
        records, errors = validate_records(EXPLOITS, raw)
        return await self.gateway.add(EXPLOITS, records), errors

    async def ingest_audit_findings(self, raw: list[dict[str, Any]]) -> tuple[int, list[str]]:
        records, errors = validate_records(AUDIT_FINDINGS, raw)
        return await self.gateway.add(AUDIT_FINDINGS, records), errors

    async def ingest_file(self, path: Path, collection: str) -> tuple[int, list[str]]:
        """Ingest a JSON/YAML records file into `exploits` or `audit_findings`."""
        raw = load_records_file(path)
        if collection == EXPLOITS:
            return await self.ingest_exploits(raw)
        if collection == AUDIT_FINDINGS:
            return await self.ingest_audit_findings(raw)
        raise ValueError(f"Cannot ingest records into {collection}")
