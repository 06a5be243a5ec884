"""Pure domain logic: models, version comparison, notes sanitising."""
