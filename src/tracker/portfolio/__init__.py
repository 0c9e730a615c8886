"""Portfolio use cases: holdings, trades, cash movements, registers and rebalancing.

Import from the submodules directly; the registers module is shared with the
sync and valuation layers.
"""
