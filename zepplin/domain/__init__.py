"""Domain values: versions, entities, errors and their JSON text forms."""
