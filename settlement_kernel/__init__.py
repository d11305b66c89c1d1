"""
Settlement Kernel

Shared infrastructure for the installment settlement engine:
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- SQLAlchemy base classes, engine/session management and money types
- Injectable clock and shared domain vocabulary
"""

__version__ = "0.1.0"
