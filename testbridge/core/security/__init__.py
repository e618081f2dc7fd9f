"""Session tokens and path containment."""
