"""Client records owned by a firm."""
