"""
LiveMetro data engine: tiered realtime subway data with local caching.
"""
