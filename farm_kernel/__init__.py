"""
Farm Kernel

Shared infrastructure for the farm management engine:
- Typed, coded exceptions
- Structured JSON logging
- SQLAlchemy base classes and session management
- ISO 4217 currency registry and Decimal-only money values
- Monotonic sequence allocation
"""

__version__ = "0.1.0"
