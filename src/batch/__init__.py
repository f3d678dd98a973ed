"""Request coalescing and bounded batch execution."""
