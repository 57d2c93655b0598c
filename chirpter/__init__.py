"""Chirpter credit escrow backend."""
