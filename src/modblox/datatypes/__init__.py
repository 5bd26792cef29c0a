"""Plain data types shared across Modblox components."""
