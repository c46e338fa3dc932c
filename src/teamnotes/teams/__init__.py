"""Teams module -- membership schemas, member matching and team management."""
