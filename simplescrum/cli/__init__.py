"""SimpleScrum command-line interface."""
