"""Pipeline stage services and the helpers they share."""
