"""RoastMyFace: face-gated photo roasting pipeline."""
