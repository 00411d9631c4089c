"""canvas-sisid: populate SIS user IDs on Canvas pseudonyms and link enrollments."""

__version__ = "0.1.0"
