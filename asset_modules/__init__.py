"""
asset_modules -- Business modules of the fixed-asset depreciation engine.

Modules wire the pure engines in ``asset_engines`` to persistence and
expose service facades to outer layers (batch, CLI).
"""
