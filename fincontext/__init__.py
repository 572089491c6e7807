# Financial Context Core
# Record normalization, context packing and evidence provenance

"""
Core invariant: a context card never exceeds its token budget, and every
fact it shows can be traced back to a source record through evidence.

Public entry points:
    pack_context      - records + options -> ContextCard
    build_evidence    - records + invocation -> EvidencePackage
    assemble_context  - both, plus query intent, insights and quality metrics
"""

from .config import InvocationMeta, PackOptions, Settings, load_settings
from .domain import ContextCard, ContextCardMeta, Snippet, SnippetKind, SnippetTags
from .evidence import EvidencePackage
from .pipeline import ContextBundle, assemble_context, pack_context
from .provenance.builder import build_evidence

__version__ = "0.1.0"

__all__ = [
    "ContextBundle",
    "ContextCard",
    "ContextCardMeta",
    "EvidencePackage",
    "InvocationMeta",
    "PackOptions",
    "Settings",
    "Snippet",
    "SnippetKind",
    "SnippetTags",
    "assemble_context",
    "build_evidence",
    "load_settings",
    "pack_context",
]
