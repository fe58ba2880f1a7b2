"""Track YouTube channels and keep a local library of their videos."""
