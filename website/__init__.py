"""Pool portal website: page serving and live statistics."""
