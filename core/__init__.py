"""Core module - accounting-neutral building blocks.

Donation records, configuration, per-day sequences and observability.
It is intentionally independent of any accounting system.

System-specific logic (Odoo, ...) belongs in /connectors/.
"""

__version__ = "1.0.0"
