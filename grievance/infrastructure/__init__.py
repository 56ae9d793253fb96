"""Infrastructure shared by all bounded contexts."""
