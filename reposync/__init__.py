"""Repository README and metadata sync for portfolio projects."""
