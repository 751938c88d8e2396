"""HTTP API for the statutory deduction engine."""
