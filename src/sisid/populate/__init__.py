"""SIS user ID population: reconcile, report, and roll back."""
