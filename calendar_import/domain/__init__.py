"""Import preview and batch commit."""
