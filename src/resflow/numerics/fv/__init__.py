"""Finite volume operators for two-point flux discretizations."""
