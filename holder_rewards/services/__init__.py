"""
Services: holder index, snapshots, wallet, swaps, transfers and payouts.
"""
