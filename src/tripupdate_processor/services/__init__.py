"""Service layer: trip update pipeline and broker binding."""
