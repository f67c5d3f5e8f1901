"""
Curriculum Pipeline

Ingestion of uploaded curriculum documents: multi-format text extraction,
normalization, minimum-content validation, per-material state tracking and
bounded background batch sweeps. Validated text is handed to an external
assessment generation service.
"""

__version__ = "0.1.0"
