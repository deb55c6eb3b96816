"""Single-image (non-distributed) analysis routines."""
