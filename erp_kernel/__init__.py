"""
ERP Kernel - inventory valuation and ledger consistency core.

Shared foundation for the engines, services and modules:
- Integer minor-unit money and basis-point rates
- Typed exceptions with machine-readable codes
- Structured JSON logging
- SQLAlchemy persistence with append-only ledger and layer tables
- The Journal Poster, the single writer of the general ledger
"""

__version__ = "0.1.0"
