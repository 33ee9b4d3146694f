"""
DEX arbitrage engine: venue adapters, path evaluation, profitability gate,
execution coordination and the cycle scheduler.
"""
