"""Forward mode automatic differentiation."""
