"""Game domain services: scoring, checkouts, remote sessions and timers.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics. Everything except ``scheduler`` runs without
an app context.
"""
