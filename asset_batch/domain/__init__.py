"""Pure domain types and schedule evaluation for depreciation runs. ZERO I/O."""
