"""
Holder rewards bot.

Swaps accumulated SOL into a reward asset and distributes it pro rata to the
holders of a tracked token, keeping a durable ledger of every conversion,
distribution and transfer.
"""

__version__ = "0.1.0"
