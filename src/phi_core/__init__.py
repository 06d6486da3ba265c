"""CaseCompass PHI core.

Field-level encryption, consent-based authorization and upload content
validation for documents shared between patients, law firms and medical
providers.
"""

__version__ = "0.1.0"
