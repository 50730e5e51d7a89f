"""
Identity collaborator seam.

This package does not own the wallet or the private key. It only resolves the
durable-state root and the current sandbox id, and rewrites `sandboxId` when a
migrated state is adopted by a new sandbox.
"""

from automaton.core.identity.models import IdentityDescriptor
from automaton.core.identity.resolver import FileIdentityResolver, IdentityResolver, load_identity, rewrite_sandbox_id

__all__ = [
    "IdentityDescriptor",
    "IdentityResolver",
    "FileIdentityResolver",
    "load_identity",
    "rewrite_sandbox_id",
]
