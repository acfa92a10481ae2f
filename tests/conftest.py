"""
Shared fixtures: sample contracts and an in-memory vector search provider.
"""

from pathlib import Path

import pytest

from extensions.knowledge.gateway import KnowledgeGateway


VULNERABLE_VAULT = """// SPDX-License-Identifier: MIT
pragma solidity ^0.7.6;

contract VulnerableVault {
    mapping(address => uint256) public balances;
    address public owner;

    function deposit() external payable {
        balances[msg.sender] += msg.value;
    }

    function withdraw(uint256 amount) external {
        require(balances[msg.sender] >= amount);
        (bool ok, ) = msg.sender.call{value: amount}("");
        balances[msg.sender] -= amount;
    }

    function withdrawAll(address payable to) external {
        require(tx.origin == owner);
        to.transfer(address(this).balance);
    }

    function setOwner(address newOwner) external {
        owner = newOwner;
    }
}
"""

SAFE_REGISTRY = """// SPDX-License-Identifier: MIT
pragma solidity 0.8.20;

import "@openzeppelin/contracts/access/AccessControl.sol";
import "@openzeppelin/contracts/security/ReentrancyGuard.sol";

contract SafeRegistry is AccessControl, ReentrancyGuard {
    bytes32 public constant EDITOR_ROLE = keccak256("EDITOR_ROLE");
    mapping(bytes32 => uint256) public entries;

    event EntrySet(bytes32 indexed key, uint256 value);

    constructor() {
        _grantRole(DEFAULT_ADMIN_ROLE, msg.sender);
    }

    function setEntry(bytes32 key, uint256 value) external onlyRole(EDITOR_ROLE) nonReentrant {
        entries[key] = value;
        emit EntrySet(key, value);
    }

    function getEntry(bytes32 key) external view returns (uint256) {
        return entries[key];
    }
}
"""


class FakeProvider:
    """In-memory VectorSearchProvider.

    `results` maps a collection to a list of (id, document, metadata, distance)
    hits, or to a callable taking the query text and returning such a list.
    `fail` makes every call raise; `fail_on` only fails queries whose text
    starts with the given prefix.
    """

    def __init__(self, results=None, fail=False, fail_on=None):
        self.results = results or {}
        self.fail = fail
        self.fail_on = fail_on
        self.queries = []
        self.stored = {}

    def query(self, collection, text, n_results, where=None):
        self.queries.append((collection, text, n_results, where))
        if self.fail or (self.fail_on and text.startswith(self.fail_on)):
            raise ConnectionError("vector backend unreachable")

        hits = self.results.get(collection, [])
        if callable(hits):
            hits = hits(text)
        hits = hits[:n_results]
        return {
            "ids": [h[0] for h in hits],
            "documents": [h[1] for h in hits],
            "metadatas": [h[2] for h in hits],
            "distances": [h[3] for h in hits],
        }

    def add(self, collection, ids, documents, metadatas):
        if self.fail:
            raise ConnectionError("vector backend unreachable")
        records = self.stored.setdefault(collection, {})
        for record_id, document, metadata in zip(ids, documents, metadatas):
            records[record_id] = (document, metadata)

    def get(self, collection, ids):
        records = self.stored.get(collection, {})
        found = [i for i in ids if i in records]
        return {
            "ids": found,
            "documents": [records[i][0] for i in found],
            "metadatas": [records[i][1] for i in found],
        }

    def count(self, collection):
        if self.fail:
            raise ConnectionError("vector backend unreachable")
        return len(self.stored.get(collection, {}))

    def texts(self, collection):
        return [q[1] for q in self.queries if q[0] == collection]


EXPLOIT_HITS = [
    ("dfhl-2016-dao", "The DAO reentrancy drain", {
        "name": "The DAO", "protocol": "The DAO", "date": "2016-06-17", "loss": "$60M",
        "category": "reentrancy", "source": "DeFiHackLabs", "attackVector": "recursive withdraw",
    }, 0.2),
    ("lea-cream-2021", "Cream Finance flash loan oracle attack", {
        "name": "Cream Finance", "protocol": "Cream", "date": "2021-10-27", "loss": "$130M",
        "category": "flash-loan", "source": "learn-evm-attacks",
    }, 0.35),
]

SWC_HITS = [
    ("SWC-107", "Reentrancy\nOne of the major dangers...", {
        "swc_id": "SWC-107", "title": "Reentrancy", "severity": "critical", "source": "swc_registry",
    }, 0.15),
    ("SWC-115", "Authorization through tx.origin", {
        "swc_id": "SWC-115", "title": "Authorization through tx.origin", "severity": "high",
        "source": "swc_registry",
    }, 0.3),
]

FINDING_HITS = [
    ("audit-001", "Missing access control on withdraw", {
        "title": "Missing access control", "severity": "high", "category": "access-control",
        "protocol": "Vault", "auditor": "Spearbit", "source": "audit",
    }, 0.4),
]


@pytest.fixture
def provider():
    return FakeProvider({
        "exploits": EXPLOIT_HITS,
        "swc_registry": SWC_HITS,
        "audit_findings": FINDING_HITS,
    })


@pytest.fixture
def gateway(provider):
    return KnowledgeGateway(provider)


@pytest.fixture
def failing_provider():
    return FakeProvider(fail=True)


@pytest.fixture
def vault_file(tmp_path) -> Path:
    path = tmp_path / "VulnerableVault.sol"
    path.write_text(VULNERABLE_VAULT)
    return path


@pytest.fixture
def registry_file(tmp_path) -> Path:
    path = tmp_path / "SafeRegistry.sol"
    path.write_text(SAFE_REGISTRY)
    return path


@pytest.fixture
def vault_source() -> str:
    return VULNERABLE_VAULT


@pytest.fixture
def registry_source() -> str:
    return SAFE_REGISTRY


@pytest.fixture
def make_provider():
    """The FakeProvider class, for tests that need custom results."""
    return FakeProvider
