"""SimpleScrum HTTP API."""
