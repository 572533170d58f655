"""
asset_batch -- Batch depreciation runs and recurring schedules.

Runs depreciation across a business unit's assets with one transaction
per asset, bounded worker concurrency and cooperative cancellation, and
fires recurring schedules from an in-process polling scheduler.

Architecture:
    asset_batch/ is a top-level package.  Nothing in asset_kernel/ or
    asset_engines/ imports from asset_batch; asset_modules imports it
    lazily from the service facade only.

Invariants:
    - Per-asset commits guarded by a compare-and-swap on the asset's last
      depreciated period (no double depreciation, no global lock).
    - Clock injection (no datetime.now() calls).
    - Schedule evaluation is pure.
    - Graceful shutdown of the scheduler thread.
"""
