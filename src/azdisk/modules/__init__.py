"""Self-contained helper modules for azdisk."""
