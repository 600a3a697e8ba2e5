"""PostgreSQL persistence: connection pool and stores."""
