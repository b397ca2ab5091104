"""
Phasing Kernel

Domain value types, typed exceptions, structured logging and the injectable
clock shared by every layer of the financial phasing core:
- Decimal-only money with an explicit "unset" sentinel
- Immutable plan snapshots (cost lines, resources, monthly phasing grid)
- Structured JSON logging with request-scoped context
"""

__version__ = "0.1.0"
