"""Infrastructure: database plumbing and concrete habit stores."""
