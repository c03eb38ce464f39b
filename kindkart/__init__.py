"""Escrow payments, settlement and reputation core for the KindKart marketplace."""
