"""docker-save archive handling."""
