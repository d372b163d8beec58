"""Face detection: models, inference pool and the detector gateway."""
