"""Study session domain model."""
