"""HTTP surface of the conquest engine."""
