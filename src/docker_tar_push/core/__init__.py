"""Session, connectivity and data types."""
