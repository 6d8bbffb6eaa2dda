"""Community board backend: DB models, pipelines, API and client.

Citizens post needs, offers and ideas; the service lists and filters them,
aggregates dashboard statistics and suggests need/offer matches.
"""
