"""
POA Compliance Validator: deterministic formality checks for California
powers of attorney with cremation/disposition authority.

Architecture: Extraction (PDF/OCR) → Rule validators (parallel) → Aggregation
Philosophy:  Flag, never certify. Every verdict is a pure function of the text.
"""

__version__ = "1.0.0"
