"""LessonHUB API: lessons, assignments, submissions and the reward ledger."""
