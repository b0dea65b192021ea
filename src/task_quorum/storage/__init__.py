"""SQLite persistence for tasks, responses and operators."""
