"""
Quizzes: question normalization, storage sources, grading and the
access-aware quiz service.
"""
