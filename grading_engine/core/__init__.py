"""
Engine components: grade store, aggregation, credential issuance, safety
screening and their shared infrastructure (event bus, cache, metrics).
"""
