"""Core primitives shared by the data, domain and service layers."""
