"""
B2B Configuration Migrator

Moves B2B gateway configuration artifacts from a source system's export into a
target partner-management API.

Supports:
- Trading partners, channels, certificates, maps, endpoints and schemas
- Type-dispatched canonical transformation of exported documents
- Dependency-aware batch migration with per-artifact failure isolation
- An append-only audit trail of every migration attempt
- Operator review (reject / forced re-migration) between phases
"""

__version__ = "0.1.0"
