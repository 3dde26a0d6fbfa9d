"""
Grading, aggregation and credential-issuance engine for project-based
learning: rubric grades per component skill, skill → competency → outcome
statistics, sticker / badge / plaque credentials and safety screening of
student self-evaluations.
"""
__version__ = "1.0.0"
