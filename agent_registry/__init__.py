"""
Agent registry program client.

Generic instruction codec and transaction submission for the identity,
attestation, consensus and capability Anchor programs: declarative schema
tables, wire-exact Borsh encoding, program address derivation, a
sign/simulate/send/confirm lifecycle and typed account reads.
"""

__version__ = "0.1.0"
