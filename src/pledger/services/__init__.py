"""Services - remote accounting integration (Firefly III) and sync."""
