"""
Spend Kernel

Lowest layer of the spend allocation system:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clock for deterministic recomputation
- Immutable domain records consumed by the engines
- Persistence primitives for computed outputs
"""

__version__ = "0.1.0"
