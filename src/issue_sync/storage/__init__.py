"""Document store and run accounting."""
