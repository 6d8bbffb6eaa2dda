"""Query and aggregation pipelines over the submission set.

Each step is callable independently of the HTTP layer, with pure functions
(``compute_stats``, ``suggest_matches``) separated from the database loaders.
"""
