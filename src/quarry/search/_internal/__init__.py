"""Internal implementation modules. Public API lives in quarry.search."""
