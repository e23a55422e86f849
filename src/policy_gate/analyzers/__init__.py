"""Analyzer collaborators for Policy Gate."""

from policy_gate.analyzers.base import (
    AIAnalyzer,
    SchemaReconciler,
    StaticAnalyzer,
    analyzer_name,
    parse_findings,
)
from policy_gate.analyzers.diff import DiffAnalyzer
from policy_gate.analyzers.remote import RemoteAnalyzer, RemoteAnalyzerConfig

__all__ = [
    "AIAnalyzer",
    "DiffAnalyzer",
    "RemoteAnalyzer",
    "RemoteAnalyzerConfig",
    "SchemaReconciler",
    "StaticAnalyzer",
    "analyzer_name",
    "parse_findings",
]
