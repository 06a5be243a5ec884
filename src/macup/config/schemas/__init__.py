"""JSON schemas bundled with macup."""
