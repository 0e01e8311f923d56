"""
Pharmacy Kernel

Order / sale fulfillment for multi-tenant pharmacies:
- Line validation and pricing with decimal money
- Share-code prescription resolution
- Atomic, race-safe stock decrements
- Saga-style order persistence with explicit partial-failure reporting
- Atomic budget spend posting
- Best-effort, append-only audit trail
"""

__version__ = "0.1.0"
