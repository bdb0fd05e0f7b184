"""Project visibility, validation errors and the update workflow."""
