"""Client-side notification feed synchronizer."""
