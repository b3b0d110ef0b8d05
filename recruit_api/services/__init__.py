"""Business services for the recruitment pipeline."""
