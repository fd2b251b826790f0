"""Core module - configuration and observability shared by the audit engine.

Domain logic lives in /reconciliation/ and /forensic_rules/.
"""

__version__ = "1.0.0"
