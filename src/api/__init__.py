"""Public facade over cache, coalescer and executor."""
