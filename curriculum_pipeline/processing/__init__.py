"""
Curriculum Processing Package
═════════════════════════════

  File on disk → Extraction → Normalization → Validation → Material status

Modules
───────
  loader.py        Lazily imported parser libraries (thread-safe get-or-create)
  extractors.py    Tag → strategy registry (pdf, docx, doc)
  normalizer.py    Whitespace / invisible character cleanup
  validator.py     Minimum-content policy
  orchestrator.py  Per-material state machine (claim → extract → persist)
"""

from curriculum_pipeline.processing.extractors import ExtractorRegistry, build_default_registry
from curriculum_pipeline.processing.normalizer import normalize
from curriculum_pipeline.processing.orchestrator import MaterialProcessor, ProcessingOutcome
from curriculum_pipeline.processing.validator import ValidationResult, validate

__all__ = [
    "ExtractorRegistry",
    "build_default_registry",
    "normalize",
    "MaterialProcessor",
    "ProcessingOutcome",
    "ValidationResult",
    "validate",
]
