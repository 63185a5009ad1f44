"""Pure domain services: formula interpretation, rule analysis and record synthesis."""
