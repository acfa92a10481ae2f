"""
Solidity analysis core.

Heuristic scanning, structural extraction, risk scoring, recommendations and
the comprehensive analyzer that ties them to the knowledge base and the
external tools. Import from the submodules directly.
"""
