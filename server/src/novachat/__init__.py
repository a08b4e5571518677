"""Novachat: a small chat server with an incremental completion relay."""
