"""
Billing Kernel

Authoritative invoice lifecycle for a small billing platform:
- Integer minor-unit money
- Idempotent invoice creation
- Gapless per-year invoice numbering
- Write-through persistence to a key-value store
"""

__version__ = "0.1.0"
