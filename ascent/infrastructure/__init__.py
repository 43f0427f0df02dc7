"""Infrastructure: persistence and database sessions."""
