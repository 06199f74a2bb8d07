"""Infrastructure adapters: backend HTTP client, face detector, camera."""
