"""Persistence schema for turfwar."""
