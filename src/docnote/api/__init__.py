"""HTTP surface for DocNote."""
