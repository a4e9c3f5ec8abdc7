"""
Selection synchronization core.

- state: in-memory SelectionState (checked flags + flat sub-item aggregate)
- engine: ReconciliationEngine, the single writer merging local intent,
  push-channel events and the startup seed
- export: pure projection of the catalog onto the current selection
- errors: the engine's error taxonomy
"""
