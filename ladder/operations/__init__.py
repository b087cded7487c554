"""
Operations Layer

Business logic that composes the database boundary, the pure rating and
rank utilities and the in-memory working state into the engine's public
operations.

Architecture:
- Database layer: durable mirror, pure data access
- Operations layer: validation, state machines, serialization per title and per match
- Services layer: read models and background hooks

Each operations module focuses on one domain:
- QueueOperations: per-title join queues
- MatchOperations: match lifecycle and result application
- RatingOperations: per-participant rating changes for a completed match
- PlacementOperations: initial placement and resolution-mode changes
"""
