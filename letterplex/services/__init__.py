"""Service clients and the sync pipeline."""
