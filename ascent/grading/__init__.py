"""Division matching and grade ladder resolution."""
