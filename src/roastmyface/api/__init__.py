"""HTTP surface for the roast pipeline."""
