"""Canvas tables, storage and queries for canvas-sisid."""
