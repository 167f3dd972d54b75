"""On-disk persistence for rally sessions, history trails and pending reviews."""
