"""Text generator integrations and command extraction."""
