"""Identity adapter, sessions and role-based access control."""
