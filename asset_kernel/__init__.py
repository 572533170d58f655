"""
Asset Kernel

Shared infrastructure for the fixed-asset depreciation engine:
- Declarative ORM base with UUID keys and audit columns
- Engine and session management
- Injectable clock (no direct calls to ``date.today()``)
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
"""

__version__ = "0.1.0"
