"""
Core infrastructure for turfwar: configuration, logging, database, events and
Redis. Nothing in here knows about gangs.
"""
